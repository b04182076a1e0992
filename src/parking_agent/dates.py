"""Target date handling and calendar text parsing."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Union

import structlog
from dateutil import parser as date_parser

from .errors import InvalidDateError

LOGGER = structlog.get_logger(__name__)

DATE_FORMAT_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
DISPLAY_DATE_PATTERN = re.compile(r"(?P<month>[A-Za-z]{3,9})\.? [0-9]{1,2}(?:,? [0-9]{2,4})?")
MONTH_NAMES = frozenset(
    [name.lower() for name in calendar.month_name[1:]]
    + [name.lower() for name in calendar.month_abbr[1:]]
    + ["sept"]
)


@dataclass(frozen=True)
class TargetDate:
    """The single calendar day a run is trying to reserve."""

    value: date

    @property
    def iso(self) -> str:
        return self.value.isoformat()

    @property
    def calendar_label(self) -> str:
        """Label used by the calendar cells, e.g. ``Monday, February 17, 2025``."""
        day = self.value
        return f"{day:%A}, {day:%B} {day.day}, {day.year}"

    def same_day(self, other: date) -> bool:
        """Calendar-day equality, ignoring any time component."""
        if isinstance(other, datetime):
            other = other.date()
        return other == self.value


def is_valid_date_format(text: str) -> bool:
    """Check the ``YYYY-MM-DD`` shape only; calendar validity is not checked."""
    return bool(DATE_FORMAT_PATTERN.fullmatch(text or ""))


def extract_calendar_date(value: Union[str, date, datetime]) -> TargetDate:
    """
    Reduce a string, date or datetime to its calendar day.

    Datetimes keep their own (local) calendar fields, so an evening timestamp
    with a negative UTC offset is not pushed onto the next day.
    """
    if isinstance(value, datetime):
        return TargetDate(value.date())
    if isinstance(value, date):
        return TargetDate(value)
    if isinstance(value, str):
        if not is_valid_date_format(value):
            raise InvalidDateError(f"Invalid date format {value!r}. Expected YYYY-MM-DD, e.g. 2025-02-17")
        try:
            return TargetDate(date.fromisoformat(value))
        except ValueError as exc:
            raise InvalidDateError(f"{value!r} is not a real calendar date") from exc
    raise InvalidDateError(f"Unsupported date input: {value!r}")


def parse_display_date(text: str, *, default_year: Optional[int] = None) -> Optional[date]:
    """
    Parse text such as ``Feb 17, 2025`` or ``February 17`` into a date.

    Only a month name followed by a day and an optional year counts; prices,
    times and lot numbers are not dates.
    """
    if not text:
        return None
    cleaned = " ".join(text.split())
    match = DISPLAY_DATE_PATTERN.fullmatch(cleaned)
    if not match or match.group("month").lower() not in MONTH_NAMES:
        return None

    default = datetime(default_year or date.today().year, 1, 1)
    try:
        parsed = date_parser.parse(cleaned, default=default, fuzzy=False)
    except (ValueError, OverflowError) as exc:
        LOGGER.debug("dates.parse_failed", text=cleaned, error=str(exc))
        return None
    return parsed.date()


def find_reserved_match(texts: Iterable[str], target: TargetDate) -> Optional[str]:
    """Return the first text whose parsed day equals the target day."""
    for text in texts:
        parsed = parse_display_date(text, default_year=target.value.year)
        if parsed is not None and target.same_day(parsed):
            return text
    return None


def is_already_reserved(texts: Iterable[str], target: TargetDate) -> bool:
    """Whether any existing reservation text refers to the target day."""
    return find_reserved_match(texts, target) is not None
