from datetime import date, datetime, timedelta, timezone

import pytest

from parking_agent.dates import (
    TargetDate,
    extract_calendar_date,
    find_reserved_match,
    is_already_reserved,
    is_valid_date_format,
    parse_display_date,
)
from parking_agent.errors import InvalidDateError

TARGET = TargetDate(date(2025, 2, 17))


@pytest.mark.parametrize("text", ["2025-02-17", "2025-13-99", "0000-00-00", "1999-12-31"])
def test_well_formed_dates_pass_format_check(text):
    assert is_valid_date_format(text)


@pytest.mark.parametrize(
    "text",
    ["", "2025-2-17", "25-02-17", "2025/02/17", "2025-02-17 ", "2025-02-17\n", "20250217", "abcd-ef-gh", "2025-02-170"],
)
def test_malformed_dates_fail_format_check(text):
    assert not is_valid_date_format(text)


def test_calendar_label_matches_cell_aria_label():
    assert TARGET.calendar_label == "Monday, February 17, 2025"
    assert TargetDate(date(2025, 12, 28)).calendar_label == "Sunday, December 28, 2025"


def test_extract_calendar_date_keeps_local_day():
    evening = datetime(2025, 11, 7, 17, 0, tzinfo=timezone(timedelta(hours=-7)))
    assert extract_calendar_date(evening).iso == "2025-11-07"
    assert extract_calendar_date("2025-02-17") == TARGET
    assert extract_calendar_date(date(2025, 2, 17)) == TARGET


def test_extract_calendar_date_rejects_impossible_dates():
    with pytest.raises(InvalidDateError):
        extract_calendar_date("2025-13-99")
    with pytest.raises(InvalidDateError):
        extract_calendar_date("17/02/2025")


def test_parse_display_date_is_loose():
    assert parse_display_date("Feb 17, 2025") == date(2025, 2, 17)
    assert parse_display_date("  February 17,   2025 ") == date(2025, 2, 17)
    assert parse_display_date("Feb 17", default_year=2025) == date(2025, 2, 17)
    assert parse_display_date("") is None


@pytest.mark.parametrize(
    "texts,expected",
    [
        (["Feb 17, 2025"], True),
        (["Mar 1, 2025", "February 17, 2025"], True),
        (["Feb 17"], True),
        (["Feb 18, 2025"], False),
        (["Feb 17, 2024"], False),
        (["Feb 17, 25"], True),
        (["17 spots left", "$17.00", "Lot 17"], False),
        ([], False),
    ],
)
def test_already_reserved_uses_calendar_day(texts, expected):
    assert is_already_reserved(texts, TARGET) is expected


@pytest.mark.parametrize(
    "text,target",
    [
        ("5 spots left", date(2026, 1, 5)),
        ("$5.00", date(2026, 1, 5)),
        ("Lot 5", date(2026, 1, 5)),
        ("Opens 7:00 AM", date(2026, 1, 1)),
        ("17", date(2025, 1, 17)),
        ("Total: 1", date(2025, 1, 1)),
    ],
)
def test_text_without_month_is_never_reserved(text, target):
    assert parse_display_date(text, default_year=target.year) is None
    assert not is_already_reserved([text], TargetDate(target))


def test_find_reserved_match_returns_text():
    assert find_reserved_match(["Jan 3, 2025", "Feb 17, 2025"], TARGET) == "Feb 17, 2025"
