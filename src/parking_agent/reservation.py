"""Purchase flow once the target date shows as available."""

from __future__ import annotations

from typing import Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .dates import TargetDate, find_reserved_match
from .errors import ReservationCommitError, SiteElementMissing
from .site import SiteAdapter

LOGGER = structlog.get_logger(__name__)


class ReservationCommitter:
    """Walks either the paid checkout or the parking-code redemption flow."""

    def __init__(self, site: SiteAdapter, *, step_timeout_seconds: float = 10.0):
        self._site = site
        self._timeout = step_timeout_seconds * 1000

    async def commit(self, page: Page, target: TargetDate, parking_code: Optional[str] = None) -> bool:
        """
        Book ``target``. Returns ``False`` when the account already holds a
        reservation for that day, ``True`` once the purchase completed.
        Raises ``ReservationCommitError`` if any step fails.
        """
        try:
            existing = find_reserved_match(await self._site.reserved_date_texts(page), target)
            if existing is not None:
                LOGGER.info("reservation.already_reserved", date_iso=target.iso, matched=existing.strip())
                return False

            LOGGER.info(
                "reservation.start",
                date_iso=target.iso,
                flow="redemption" if parking_code else "paid",
            )
            await self._site.click_date_cell(page, target)
            if parking_code:
                await self._redeem(page)
            else:
                await self._purchase(page)
        except (PlaywrightError, SiteElementMissing) as exc:
            LOGGER.error("reservation.failed", date_iso=target.iso, error=str(exc))
            raise ReservationCommitError(f"Reservation for {target.iso} failed: {exc}") from exc

        LOGGER.info("reservation.complete", date_iso=target.iso, url=page.url)
        return True

    async def _purchase(self, page: Page) -> None:
        await self._site.select_paid_rate(page, timeout=self._timeout)
        await self._site.wait_for_checkout(page, timeout=self._timeout)
        LOGGER.info("reservation.checkout", url=page.url)
        await self._site.pay(page, timeout=self._timeout)
        await self._site.confirm_payment(page, timeout=self._timeout)

    async def _redeem(self, page: Page) -> None:
        await self._site.open_redemption_panel(page, timeout=self._timeout)
        if await self._site.accept_terms(page, timeout=self._timeout):
            LOGGER.debug("reservation.terms_accepted")
        await self._site.submit_redemption(page)
        await self._site.confirm_redemption(page, timeout=self._timeout)
        await self._site.wait_for_purchase(page, timeout=self._timeout)
