"""Rate-limit detection from failed network requests."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

import structlog
from playwright.async_api import BrowserContext, Page, Request

from .site import SiteAdapter

LOGGER = structlog.get_logger(__name__)

RecoveryCallback = Callable[[], Awaitable[None]]


class RateLimitSentinel:
    """
    Session-scoped observer for the upstream GraphQL rate limit.

    The flag is set at most once and the recovery callback is scheduled at
    most once. Any ``net::ERR_FAILED`` on the watched endpoint counts, so an
    ordinary connection drop is indistinguishable from a real rate limit.
    """

    def __init__(self, site: SiteAdapter, on_rate_limited: Optional[RecoveryCallback] = None):
        self._site = site
        self._on_rate_limited = on_rate_limited
        self._rate_limited = False
        self._closed = False
        self._listeners: List[Tuple[object, str, Callable]] = []
        self._recovery_task: Optional[asyncio.Task] = None

    @property
    def rate_limited(self) -> bool:
        return self._rate_limited

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def recovery_task(self) -> Optional[asyncio.Task]:
        return self._recovery_task

    def attach(self, page: Page) -> None:
        """Watch failed requests on ``page``."""
        if self._closed:
            raise RuntimeError("Sentinel has been cleaned up")
        self._register(page, "requestfailed", self._handle_request_failed)

    def watch(self, context: BrowserContext) -> None:
        """Attach to every page opened later in ``context``."""
        if self._closed:
            raise RuntimeError("Sentinel has been cleaned up")
        self._register(context, "page", self._handle_new_page)

    def cleanup(self) -> None:
        """Remove every listener this sentinel registered."""
        LOGGER.info("sentinel.cleanup", handlers=len(self._listeners))
        self._closed = True
        while self._listeners:
            target, event, handler = self._listeners.pop()
            try:
                target.remove_listener(event, handler)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("sentinel.remove_failed", listener_event=event, error=str(exc))

    def _register(self, target, event: str, handler: Callable) -> None:
        target.on(event, handler)
        self._listeners.append((target, event, handler))

    def _handle_new_page(self, page: Page) -> None:
        if self._closed:
            return
        LOGGER.info("sentinel.page_attached")
        self.attach(page)

    def _handle_request_failed(self, request: Request) -> None:
        if self._closed:
            return
        url = request.url
        if not self._site.watches_request(url):
            return

        failure = request.failure
        LOGGER.info("sentinel.graphql_failed", url=url, failure=failure)
        if not self._site.is_rate_limit_failure(url, failure) or self._rate_limited:
            return

        self._rate_limited = True
        LOGGER.warning(
            "sentinel.rate_limited",
            url=url,
            failure=failure,
            note="treated as rate limit; may be an ordinary network failure",
        )
        if self._on_rate_limited is not None:
            self._recovery_task = asyncio.ensure_future(self._run_recovery())

    async def _run_recovery(self) -> None:
        try:
            await self._on_rate_limited()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("sentinel.recovery_failed", error=str(exc))
