"""Runs one reservation attempt end-to-end."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .auth import login
from .browser import ParkingBrowser
from .config import Settings
from .errors import NotificationError, ParkingAgentError
from .models import Outcome, ReservationRequest
from .notifications import booked_message, send_text_message
from .poller import AvailabilityPoller
from .reservation import ReservationCommitter
from .sentinel import RateLimitSentinel
from .site import HonkParkingSite, SiteAdapter

LOGGER = structlog.get_logger(__name__)


class ReservationWorker:
    """
    Bootstraps the browser, logs in and polls for the requested date.

    When the sentinel reports a rate limit the in-flight login/poll task is
    cancelled and replaced by a fresh one, unless a reservation is already
    being committed.
    """

    def __init__(
        self,
        settings: Settings,
        request: ReservationRequest,
        *,
        site: Optional[SiteAdapter] = None,
        browser_factory: Callable[[Settings], ParkingBrowser] = ParkingBrowser,
    ):
        self._settings = settings
        self._request = request
        self._site = site or HonkParkingSite()
        self._browser_factory = browser_factory
        self.poller = AvailabilityPoller(
            self._site,
            ReservationCommitter(self._site, step_timeout_seconds=settings.step_timeout_seconds),
            interval_seconds=settings.poll_interval_seconds,
            cell_timeout_seconds=settings.cell_timeout_seconds,
            make_reservation=settings.make_reservation,
        )
        self.restarts = 0
        self._task: Optional[asyncio.Task] = None
        self._stop: Optional[asyncio.Event] = None
        self._finished = False

    def stop(self) -> None:
        """Ask the poll loop to finish after its current iteration."""
        if self._stop is not None:
            self._stop.set()

    async def run(self) -> Outcome:
        request = self._request
        LOGGER.info(
            "worker.start",
            date_iso=request.target.iso,
            base_url=self._settings.resort_base_url,
            make_reservation=self._settings.make_reservation,
        )
        self._stop = asyncio.Event()

        async with self._browser_factory(self._settings) as browser:
            page = browser.page
            sentinel = RateLimitSentinel(self._site, on_rate_limited=lambda: self._recover(page))
            sentinel.attach(page)
            sentinel.watch(browser.context)
            try:
                outcome = await self._supervise(page)
            finally:
                self._finished = True
                sentinel.cleanup()
                if self._task is not None and not self._task.done():
                    self._task.cancel()
                recovery = sentinel.recovery_task
                if recovery is not None and not recovery.done():
                    recovery.cancel()

        LOGGER.info("worker.finished", date_iso=request.target.iso, outcome=outcome.value, restarts=self.restarts)
        if outcome is Outcome.BOOKED:
            await self._notify_booked()
        return outcome

    async def _supervise(self, page: Page) -> Outcome:
        self._task = asyncio.create_task(self._login_and_poll(page))
        while True:
            task = self._task
            try:
                return await task
            except asyncio.CancelledError:
                # A recovery swapped in a new task; anything else is a real cancel.
                if task is self._task or not task.cancelled():
                    raise
                LOGGER.info("worker.resumed", restarts=self.restarts)

    async def _login_and_poll(self, page: Page) -> Outcome:
        request = self._request
        settings = self._settings
        try:
            await login(
                page,
                self._site,
                settings.resort_base_url,
                request.username,
                request.password.get_secret_value(),
                request.sms_code,
                sms_wait_seconds=settings.sms_wait_seconds,
            )
        except (ParkingAgentError, PlaywrightError) as exc:
            LOGGER.exception("worker.login_failed", error=str(exc))

        return await self.poller.poll(
            page,
            settings.resort_base_url,
            request.target,
            request.parking_code,
            stop=self._stop,
            deadline_seconds=settings.poll_deadline_seconds,
        )

    async def _recover(self, page: Page) -> None:
        previous = self._task
        if self._finished or previous is None or previous.done():
            return
        if self.poller.committing:
            LOGGER.warning("worker.recovery_skipped", reason="reservation in flight")
            return

        self.restarts += 1
        LOGGER.warning("worker.recovering", restarts=self.restarts)
        self._task = asyncio.create_task(self._login_and_poll(page))
        previous.cancel()

    async def _notify_booked(self) -> None:
        if not self._settings.twilio_configured:
            return
        message = booked_message(self._request.target.iso, self._settings.resort_base_url)
        try:
            await send_text_message(self._settings, message)
        except (NotificationError, httpx.HTTPError) as exc:
            LOGGER.error("worker.notify_failed", error=str(exc))
