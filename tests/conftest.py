"""Shared fakes: no real browser is started by the test suite."""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from parking_agent.config import Settings
from parking_agent.site import AVAILABLE_BACKGROUND, CHECKOUT_URL_PREFIX, CellStyle, HonkParkingSite

BASE_URL = "https://reserve.altaparking.com"
GRAPHQL_URL = "https://platform.honkmobile.com/graphql?honkGUID=abc"


class FakeRequest:
    def __init__(self, url: str, failure: Optional[str]):
        self.url = url
        self.failure = failure


class FakeEmitter:
    def __init__(self):
        self.handlers = defaultdict(list)

    def on(self, event, handler):
        self.handlers[event].append(handler)

    def remove_listener(self, event, handler):
        self.handlers[event].remove(handler)

    def emit(self, event, payload):
        for handler in list(self.handlers[event]):
            handler(payload)

    def handler_count(self) -> int:
        return sum(len(items) for items in self.handlers.values())


class FakePage(FakeEmitter):
    def __init__(self, url: str = "about:blank"):
        super().__init__()
        self.url = url
        self.visited: List[str] = []
        self.goto_errors: List[Exception] = []

    async def goto(self, url, wait_until=None):
        self.visited.append(url)
        if self.goto_errors:
            raise self.goto_errors.pop(0)
        self.url = url

    def fail_request(self, url: str = GRAPHQL_URL, failure: Optional[str] = "net::ERR_FAILED"):
        self.emit("requestfailed", FakeRequest(url, failure))


class FakeContext(FakeEmitter):
    pass


class FakeBrowser:
    """Stands in for ``ParkingBrowser``."""

    def __init__(self, settings=None, page: Optional[FakePage] = None):
        self.page = page or FakePage()
        self.context = FakeContext()
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True


class FakeSite(HonkParkingSite):
    """
    Scripted site. ``backgrounds`` is consumed one entry per calendar read;
    an entry may be a colour, ``None`` (cell missing) or an exception. The
    last entry repeats.
    """

    def __init__(
        self,
        backgrounds=(AVAILABLE_BACKGROUND,),
        *,
        reserved_texts=(),
        fail_steps=(),
        terms_checked: bool = False,
        post_login_url: Optional[str] = None,
        sms_completes: bool = True,
    ):
        self.backgrounds = list(backgrounds)
        self.reserved_texts = list(reserved_texts)
        self.fail_steps = set(fail_steps)
        self.terms_checked = terms_checked
        self.post_login_url = post_login_url
        self.sms_completes = sms_completes
        self.calls: List[str] = []
        self.reads = 0
        self.on_read: Optional[Callable[[FakePage, int], None]] = None

    def _step(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_steps:
            raise PlaywrightTimeoutError(f"Timeout 10000ms exceeded waiting for {name}")

    async def submit_login(self, page, username, password):
        self._step("submit_login")
        page.url = self.post_login_url or f"{BASE_URL}/select-parking"

    async def submit_sms_code(self, page, code, *, timeout):
        self._step("submit_sms_code")
        page.url = f"{BASE_URL}/select-parking"
        return True

    async def wait_for_sms_completion(self, page, *, timeout):
        self._step("wait_for_sms_completion")
        if not self.sms_completes:
            raise PlaywrightTimeoutError("Timeout 300000ms exceeded.")
        page.url = f"{BASE_URL}/select-parking"

    async def reveal_code_calendar(self, page):
        self._step("reveal_code_calendar")

    async def read_cell_style(self, page, target, *, timeout):
        self.reads += 1
        self.calls.append("read_cell_style")
        if self.on_read is not None:
            self.on_read(page, self.reads)
        value = self.backgrounds.pop(0) if len(self.backgrounds) > 1 else self.backgrounds[0]
        if isinstance(value, Exception):
            raise value
        if value is None:
            return None
        return CellStyle(background_color=value, color="rgb(0, 0, 0)")

    async def reserved_date_texts(self, page):
        self._step("reserved_date_texts")
        return list(self.reserved_texts)

    async def click_date_cell(self, page, target):
        self._step("click_date_cell")

    async def select_paid_rate(self, page, *, timeout):
        self._step("select_paid_rate")

    async def wait_for_checkout(self, page, *, timeout):
        self._step("wait_for_checkout")
        page.url = CHECKOUT_URL_PREFIX + "abc123"

    async def pay(self, page, *, timeout):
        self._step("pay")

    async def confirm_payment(self, page, *, timeout):
        self._step("confirm_payment")

    async def open_redemption_panel(self, page, *, timeout):
        self._step("open_redemption_panel")

    async def accept_terms(self, page, *, timeout):
        self._step("accept_terms")
        if self.terms_checked:
            return False
        self.terms_checked = True
        return True

    async def submit_redemption(self, page):
        self._step("submit_redemption")

    async def confirm_redemption(self, page, *, timeout):
        self._step("confirm_redemption")

    async def wait_for_purchase(self, page, *, timeout):
        self._step("wait_for_purchase")
        page.url = f"{BASE_URL}/parking-codes?purchased=1"


@pytest.fixture
def settings(monkeypatch) -> Settings:
    for name in ("EMAIL", "PASSWORD", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    return Settings(
        base_url=BASE_URL,
        poll_interval_seconds=0.01,
        cell_timeout_seconds=0.01,
        step_timeout_seconds=0.01,
        sms_wait_seconds=0.01,
    )


@pytest.fixture
def page() -> FakePage:
    return FakePage()
