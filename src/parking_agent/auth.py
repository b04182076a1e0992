"""Login and SMS verification against the resort portal."""

from __future__ import annotations

from typing import Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .errors import SiteElementMissing, SmsVerificationError
from .site import SiteAdapter

LOGGER = structlog.get_logger(__name__)

SMS_SUBMIT_TIMEOUT_SECONDS = 10.0
SMS_MANUAL_WAIT_SECONDS = 300.0


async def handle_sms_verification(
    page: Page,
    site: SiteAdapter,
    sms_code: Optional[str] = None,
    *,
    manual_wait_seconds: float = SMS_MANUAL_WAIT_SECONDS,
) -> bool:
    """
    Complete the SMS challenge if the page is showing one.

    With ``sms_code`` the code is typed and submitted. Without it the user has
    to enter the code in the browser window; we wait until the page leaves the
    challenge path or ``manual_wait_seconds`` runs out. Returns ``False`` when
    verification did not complete.
    """
    if not site.is_sms_challenge(page.url):
        return True

    LOGGER.info("sms.challenge_detected", url=page.url)
    try:
        if sms_code:
            LOGGER.info("sms.submit_code")
            submitted = await site.submit_sms_code(page, sms_code, timeout=SMS_SUBMIT_TIMEOUT_SECONDS * 1000)
            if submitted:
                LOGGER.info("sms.submitted")
            return submitted

        LOGGER.warning("sms.awaiting_manual_entry", timeout_seconds=manual_wait_seconds)
        await site.wait_for_sms_completion(page, timeout=manual_wait_seconds * 1000)
        LOGGER.info("sms.completed")
        return True
    except (PlaywrightError, SiteElementMissing) as exc:
        LOGGER.error("sms.failed", error=str(exc))
        return False


async def login(
    page: Page,
    site: SiteAdapter,
    base_url: str,
    username: str,
    password: str,
    sms_code: Optional[str] = None,
    *,
    sms_wait_seconds: float = SMS_MANUAL_WAIT_SECONDS,
) -> None:
    """Log into the parking reservation portal."""
    login_url = site.login_url(base_url)
    LOGGER.info("login.start", url=login_url)
    await page.goto(login_url, wait_until="networkidle")

    if not site.is_login_page(page.url):
        LOGGER.info("login.already_authenticated", url=page.url)
        return

    await site.submit_login(page, username, password)

    if site.is_sms_challenge(page.url):
        LOGGER.info("login.sms_redirect", url=page.url)
        verified = await handle_sms_verification(page, site, sms_code, manual_wait_seconds=sms_wait_seconds)
        if not verified:
            raise SmsVerificationError("SMS verification failed or timed out")

    LOGGER.info("login.complete", redirected_to=page.url)
