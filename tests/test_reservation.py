from datetime import date

import pytest
from conftest import FakePage, FakeSite

from parking_agent.dates import TargetDate
from parking_agent.errors import ReservationCommitError
from parking_agent.reservation import ReservationCommitter

TARGET = TargetDate(date(2025, 2, 17))

PAID_STEPS = [
    "reserved_date_texts",
    "click_date_cell",
    "select_paid_rate",
    "wait_for_checkout",
    "pay",
    "confirm_payment",
]

REDEMPTION_STEPS = [
    "reserved_date_texts",
    "click_date_cell",
    "open_redemption_panel",
    "accept_terms",
    "submit_redemption",
    "confirm_redemption",
    "wait_for_purchase",
]


async def test_paid_flow():
    site = FakeSite()
    page = FakePage()

    assert await ReservationCommitter(site).commit(page, TARGET) is True
    assert site.calls == PAID_STEPS


async def test_redemption_flow():
    site = FakeSite()
    page = FakePage()

    assert await ReservationCommitter(site).commit(page, TARGET, "PASS-123") is True
    assert site.calls == REDEMPTION_STEPS
    assert "purchased" in page.url
    assert site.terms_checked


async def test_redemption_with_terms_already_checked():
    site = FakeSite(terms_checked=True)

    assert await ReservationCommitter(site).commit(FakePage(), TARGET, "PASS-123") is True
    assert site.calls == REDEMPTION_STEPS


async def test_already_reserved_aborts_before_clicking():
    site = FakeSite(reserved_texts=["Jan 4, 2025", "Feb 17, 2025"])

    assert await ReservationCommitter(site).commit(FakePage(), TARGET) is False
    assert site.calls == ["reserved_date_texts"]


@pytest.mark.parametrize("step", ["select_paid_rate", "wait_for_checkout", "pay", "confirm_payment"])
async def test_paid_flow_failures_are_fatal(step):
    site = FakeSite(fail_steps={step})

    with pytest.raises(ReservationCommitError):
        await ReservationCommitter(site).commit(FakePage(), TARGET)
    assert site.calls[-1] == step


async def test_missing_modal_is_fatal():
    site = FakeSite(fail_steps={"confirm_redemption"})

    with pytest.raises(ReservationCommitError):
        await ReservationCommitter(site).commit(FakePage(), TARGET, "PASS-123")
    assert "wait_for_purchase" not in site.calls
