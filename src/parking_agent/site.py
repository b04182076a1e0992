"""Selectors and page actions for the resort booking site.

Everything here depends on markup the agent does not control. The poller,
committer and authenticator only talk to the site through ``SiteAdapter`` so
a markup change means editing this module and nothing else.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import structlog
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .dates import TargetDate
from .errors import SiteElementMissing

LOGGER = structlog.get_logger(__name__)

AVAILABLE_BACKGROUND = "rgba(49, 200, 25, 0.2)"
GRAPHQL_ENDPOINT = "platform.honkmobile.com/graphql"
RATE_LIMIT_FAILURE = "net::ERR_FAILED"
CHECKOUT_URL_PREFIX = "https://parking.honkmobile.com/checkout/"
PURCHASED_MARKER = "?purchased"

LOGIN_PATH = "/login"
SMS_VERIFY_PATH = "/sms-verify"
SELECT_PARKING_PATH = "/select-parking"
PARKING_CODES_PATH = "/parking-codes"

EMAIL_SELECTOR = "#emailAddress"
PASSWORD_SELECTOR = "#password"
SUBMIT_SELECTOR = 'button[type="submit"]'
SMS_INPUT_SELECTOR = 'input[type="text"]'
SMS_VERIFY_BUTTON_SELECTOR = 'button:has-text("Verify")'
RESERVED_DATE_SELECTOR = ".text-muted"
RATE_CARD_SELECTOR = 'div[class^="SelectRate_card"]'
PAY_BUTTON_SELECTOR = ".CtaButton--container__shadow"
CONFIRM_BUTTON_SELECTOR = ".ButtonComponent"
ARROW_SELECTOR = '[alt="arrow"]'
TERMS_SELECTOR = "#terms"
PLAIN_BUTTON_SELECTOR = 'button[type="button"]'
MODAL_SELECTOR = ".modals"
MODAL_BUTTON_SELECTOR = ".modals button"
RESERVE_PARKING_TEXT = "Reserve Parking"

_CELL_STYLED_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    return Boolean(window.getComputedStyle(el).backgroundColor);
}
"""

_CELL_STYLE_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return null;
    const style = window.getComputedStyle(el);
    return {backgroundColor: style.backgroundColor, color: style.color};
}
"""

_CLICK_BUTTON_BY_TEXT_JS = """
([selector, text]) => {
    const buttons = Array.from(document.querySelectorAll(selector));
    const button = buttons.find(btn => btn.textContent.trim() === text);
    if (!button) return false;
    button.click();
    return true;
}
"""

_URL_STARTS_WITH_JS = "(prefix) => window.location.href.startsWith(prefix)"
_URL_CONTAINS_JS = "(marker) => window.location.href.includes(marker)"
_URL_LEFT_PATH_JS = "(path) => !window.location.href.includes(path)"


@dataclass
class CellStyle:
    """Computed colours of a calendar cell."""

    background_color: str
    color: Optional[str] = None


class SiteAdapter(ABC):
    """Page-level operations the booking flow needs from a resort site."""

    available_background: str = AVAILABLE_BACKGROUND
    rate_limit_endpoint: str = GRAPHQL_ENDPOINT
    rate_limit_failure: str = RATE_LIMIT_FAILURE

    def is_available_color(self, background_color: Optional[str]) -> bool:
        """Exact match against the available colour; no tolerance."""
        return background_color == self.available_background

    def watches_request(self, url: str) -> bool:
        return self.rate_limit_endpoint in url

    def is_rate_limit_failure(self, url: str, failure: Optional[str]) -> bool:
        """Whether a failed request looks like the upstream rate limit."""
        return self.watches_request(url) and failure == self.rate_limit_failure

    @abstractmethod
    def login_url(self, base_url: str) -> str:
        pass

    @abstractmethod
    def is_login_page(self, url: str) -> bool:
        pass

    @abstractmethod
    def is_sms_challenge(self, url: str) -> bool:
        pass

    @abstractmethod
    def calendar_url(self, base_url: str, *, with_code: bool) -> str:
        pass

    @abstractmethod
    async def submit_login(self, page: Page, username: str, password: str) -> None:
        pass

    @abstractmethod
    async def submit_sms_code(self, page: Page, code: str, *, timeout: float) -> bool:
        pass

    @abstractmethod
    async def wait_for_sms_completion(self, page: Page, *, timeout: float) -> None:
        pass

    @abstractmethod
    async def reveal_code_calendar(self, page: Page) -> None:
        pass

    @abstractmethod
    async def read_cell_style(self, page: Page, target: TargetDate, *, timeout: float) -> Optional[CellStyle]:
        pass

    @abstractmethod
    async def reserved_date_texts(self, page: Page) -> List[str]:
        pass

    @abstractmethod
    async def click_date_cell(self, page: Page, target: TargetDate) -> None:
        pass

    @abstractmethod
    async def select_paid_rate(self, page: Page, *, timeout: float) -> None:
        pass

    @abstractmethod
    async def wait_for_checkout(self, page: Page, *, timeout: float) -> None:
        pass

    @abstractmethod
    async def pay(self, page: Page, *, timeout: float) -> None:
        pass

    @abstractmethod
    async def confirm_payment(self, page: Page, *, timeout: float) -> None:
        pass

    @abstractmethod
    async def open_redemption_panel(self, page: Page, *, timeout: float) -> None:
        pass

    @abstractmethod
    async def accept_terms(self, page: Page, *, timeout: float) -> bool:
        pass

    @abstractmethod
    async def submit_redemption(self, page: Page) -> None:
        pass

    @abstractmethod
    async def confirm_redemption(self, page: Page, *, timeout: float) -> None:
        pass

    @abstractmethod
    async def wait_for_purchase(self, page: Page, *, timeout: float) -> None:
        pass


class HonkParkingSite(SiteAdapter):
    """Resort parking portals hosted on HONK Mobile (reserve.<resort>parking.com).

    Timeouts are in milliseconds, matching Playwright.
    """

    def login_url(self, base_url: str) -> str:
        return base_url.rstrip("/") + LOGIN_PATH

    def is_login_page(self, url: str) -> bool:
        return LOGIN_PATH in url

    def is_sms_challenge(self, url: str) -> bool:
        return SMS_VERIFY_PATH in url

    def calendar_url(self, base_url: str, *, with_code: bool) -> str:
        path = PARKING_CODES_PATH if with_code else SELECT_PARKING_PATH
        return base_url.rstrip("/") + path

    @staticmethod
    def date_selector(target: TargetDate) -> str:
        return f"div[aria-label='{target.calendar_label}']"

    async def submit_login(self, page: Page, username: str, password: str) -> None:
        email_input = await page.wait_for_selector(EMAIL_SELECTOR, state="visible")
        await email_input.type(username, delay=2)

        password_input = await page.wait_for_selector(PASSWORD_SELECTOR, state="visible")
        await password_input.type(password, delay=2)

        await page.wait_for_selector(SUBMIT_SELECTOR, state="visible")
        async with page.expect_navigation(wait_until="networkidle"):
            await page.click(SUBMIT_SELECTOR)

    async def submit_sms_code(self, page: Page, code: str, *, timeout: float) -> bool:
        sms_input = await page.wait_for_selector(SMS_INPUT_SELECTOR, state="visible")
        await sms_input.type(code, delay=2)

        submit_button = await page.query_selector(SUBMIT_SELECTOR) or await page.query_selector(
            SMS_VERIFY_BUTTON_SELECTOR
        )
        if submit_button is None:
            LOGGER.warning("sms.submit_missing")
            return False

        async with page.expect_navigation(wait_until="networkidle", timeout=timeout):
            await submit_button.click()
        return True

    async def wait_for_sms_completion(self, page: Page, *, timeout: float) -> None:
        # One budget covers both waits; Playwright treats a timeout of 0 as "no timeout".
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout / 1000
        await page.wait_for_selector(SMS_INPUT_SELECTOR, state="visible", timeout=timeout)
        remaining = max(1.0, (deadline - loop.time()) * 1000)
        await page.wait_for_function(_URL_LEFT_PATH_JS, arg=SMS_VERIFY_PATH, timeout=remaining)

    async def reveal_code_calendar(self, page: Page) -> None:
        clicked = await page.evaluate(_CLICK_BUTTON_BY_TEXT_JS, [PLAIN_BUTTON_SELECTOR, RESERVE_PARKING_TEXT])
        if not clicked:
            raise SiteElementMissing(f'Could not find button with text "{RESERVE_PARKING_TEXT}"')

    async def read_cell_style(self, page: Page, target: TargetDate, *, timeout: float) -> Optional[CellStyle]:
        selector = self.date_selector(target)
        try:
            await page.wait_for_function(_CELL_STYLED_JS, arg=selector, timeout=timeout, polling=100)
        except PlaywrightTimeoutError:
            LOGGER.debug("site.cell_timeout", selector=selector)
            return None

        # Query again instead of holding a handle; the calendar re-renders.
        styles = await page.evaluate(_CELL_STYLE_JS, selector)
        if not styles:
            return None
        return CellStyle(background_color=styles.get("backgroundColor", ""), color=styles.get("color"))

    async def reserved_date_texts(self, page: Page) -> List[str]:
        texts: List[str] = []
        for element in await page.query_selector_all(RESERVED_DATE_SELECTOR):
            text = await element.text_content()
            if text:
                texts.append(text)
        return texts

    async def click_date_cell(self, page: Page, target: TargetDate) -> None:
        selector = self.date_selector(target)
        cells = await page.query_selector_all(selector)
        if not cells:
            raise SiteElementMissing(f"No calendar cell matches {selector}")
        await cells[0].click()

    async def select_paid_rate(self, page: Page, *, timeout: float) -> None:
        card = await page.wait_for_selector(RATE_CARD_SELECTOR, state="visible", timeout=timeout)
        await card.click()

    async def wait_for_checkout(self, page: Page, *, timeout: float) -> None:
        await page.wait_for_function(_URL_STARTS_WITH_JS, arg=CHECKOUT_URL_PREFIX, timeout=timeout)

    async def pay(self, page: Page, *, timeout: float) -> None:
        pay_button = await page.wait_for_selector(PAY_BUTTON_SELECTOR, state="visible", timeout=timeout)
        # The button is visible before its click handler is bound.
        await page.wait_for_timeout(1500)
        await pay_button.click()

    async def confirm_payment(self, page: Page, *, timeout: float) -> None:
        confirm_button = await page.wait_for_selector(CONFIRM_BUTTON_SELECTOR, state="visible", timeout=timeout)
        await confirm_button.click()

    async def open_redemption_panel(self, page: Page, *, timeout: float) -> None:
        arrow = await page.wait_for_selector(ARROW_SELECTOR, state="visible", timeout=timeout)
        if arrow is None:
            raise SiteElementMissing('Could not find element with alt text "arrow"')
        await arrow.click()

    async def accept_terms(self, page: Page, *, timeout: float) -> bool:
        checkbox = await page.wait_for_selector(TERMS_SELECTOR, state="visible", timeout=timeout)
        if checkbox is None:
            raise SiteElementMissing("Terms checkbox not found")
        if await checkbox.is_checked():
            return False
        await checkbox.click()
        return True

    async def submit_redemption(self, page: Page) -> None:
        # The redeem button has no stable hook; it is the last plain button.
        buttons = await page.query_selector_all(PLAIN_BUTTON_SELECTOR)
        LOGGER.debug("site.redeem_candidates", count=len(buttons))
        if not buttons:
            raise SiteElementMissing("No redeem button found")
        await buttons[-1].click()

    async def confirm_redemption(self, page: Page, *, timeout: float) -> None:
        await page.wait_for_selector(MODAL_SELECTOR, state="visible", timeout=timeout)
        modal_buttons = await page.query_selector_all(MODAL_BUTTON_SELECTOR)
        if len(modal_buttons) < 2:
            raise SiteElementMissing(f"Confirmation modal has {len(modal_buttons)} button(s), expected 2")
        await modal_buttons[1].click()

    async def wait_for_purchase(self, page: Page, *, timeout: float) -> None:
        await page.wait_for_function(_URL_CONTAINS_JS, arg=PURCHASED_MARKER, timeout=timeout)
