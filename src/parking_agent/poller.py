"""Calendar polling loop for the target date."""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .dates import TargetDate
from .errors import SiteElementMissing
from .models import Outcome, PollState
from .reservation import ReservationCommitter
from .site import SiteAdapter

LOGGER = structlog.get_logger(__name__)

CODE_UI_SETTLE_SECONDS = 2.0


def is_detached_error(exc: BaseException) -> bool:
    """Errors from a calendar re-render detaching the node we were looking at."""
    message = str(exc).lower()
    return "detached" in message or "not attached" in message


class AvailabilityPoller:
    """
    Reloads the calendar until the target cell shows the available colour,
    then hands over to the committer.

    The interval is fixed. Without a stop event or deadline the loop only ends
    on availability or process exit.
    """

    def __init__(
        self,
        site: SiteAdapter,
        committer: ReservationCommitter,
        *,
        interval_seconds: float = 10.0,
        cell_timeout_seconds: float = 5.0,
        code_ui_settle_seconds: float = CODE_UI_SETTLE_SECONDS,
        make_reservation: bool = True,
    ):
        self._site = site
        self._committer = committer
        self._interval = interval_seconds
        self._cell_timeout = cell_timeout_seconds * 1000
        self._settle = code_ui_settle_seconds
        self._make_reservation = make_reservation
        self.state = PollState.IDLE
        self.iterations = 0

    @property
    def committing(self) -> bool:
        return self.state is PollState.COMMITTING

    async def poll(
        self,
        page: Page,
        base_url: str,
        target: TargetDate,
        parking_code: Optional[str] = None,
        *,
        stop: Optional[asyncio.Event] = None,
        deadline_seconds: Optional[float] = None,
    ) -> Outcome:
        """Poll until the date is available (and booked) or the run is stopped."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + deadline_seconds if deadline_seconds is not None else None
        LOGGER.info(
            "poll.start",
            date_iso=target.iso,
            label=target.calendar_label,
            parking_code=bool(parking_code),
            make_reservation=self._make_reservation,
        )

        while True:
            if self._stopped(stop, deadline):
                return self._abort(target)

            self.iterations += 1
            if await self._check_once(page, base_url, target, parking_code):
                self.state = PollState.AVAILABLE
                LOGGER.info("poll.available", date_iso=target.iso, iteration=self.iterations)
                if not self._make_reservation:
                    self.state = PollState.DONE
                    return Outcome.AVAILABLE
                return await self._commit(page, target, parking_code)

            self.state = PollState.UNAVAILABLE
            LOGGER.info("poll.refresh", date_iso=target.iso, iteration=self.iterations, wait_seconds=self._interval)
            if await self._wait(stop, deadline):
                return self._abort(target)

    async def _commit(self, page: Page, target: TargetDate, parking_code: Optional[str]) -> Outcome:
        self.state = PollState.COMMITTING
        try:
            booked = await self._committer.commit(page, target, parking_code)
        finally:
            self.state = PollState.DONE
        return Outcome.BOOKED if booked else Outcome.ALREADY_RESERVED

    async def _check_once(self, page: Page, base_url: str, target: TargetDate, parking_code: Optional[str]) -> bool:
        try:
            self.state = PollState.NAVIGATING
            url = self._site.calendar_url(base_url, with_code=bool(parking_code))
            await page.goto(url, wait_until="networkidle")

            if parking_code:
                self.state = PollState.RESOLVING_CODE_UI
                await self._site.reveal_code_calendar(page)
                await asyncio.sleep(self._settle)

            self.state = PollState.INSPECTING
            style = await self._site.read_cell_style(page, target, timeout=self._cell_timeout)
        except (PlaywrightError, SiteElementMissing) as exc:
            if not is_detached_error(exc):
                LOGGER.warning("poll.check_error", date_iso=target.iso, error=str(exc))
            return False

        if style is None:
            LOGGER.info("poll.cell_missing", label=target.calendar_label)
            return False

        LOGGER.info(
            "poll.cell_sampled",
            label=target.calendar_label,
            background=style.background_color,
            color=style.color,
        )
        return self._site.is_available_color(style.background_color)

    async def _wait(self, stop: Optional[asyncio.Event], deadline: Optional[float]) -> bool:
        """Sleep one interval. Returns ``True`` if the run should stop."""
        delay = self._interval
        if deadline is not None:
            delay = max(0.0, min(delay, deadline - asyncio.get_running_loop().time()))

        if stop is None:
            await asyncio.sleep(delay)
        else:
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        return self._stopped(stop, deadline)

    @staticmethod
    def _stopped(stop: Optional[asyncio.Event], deadline: Optional[float]) -> bool:
        if stop is not None and stop.is_set():
            return True
        return deadline is not None and asyncio.get_running_loop().time() >= deadline

    def _abort(self, target: TargetDate) -> Outcome:
        self.state = PollState.DONE
        LOGGER.info("poll.aborted", date_iso=target.iso, iterations=self.iterations)
        return Outcome.ABORTED
