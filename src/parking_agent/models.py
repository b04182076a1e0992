"""Shared data models used across the parking agent."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import SecretStr

from .dates import TargetDate


class Outcome(str, Enum):
    """Terminal result of a polling run."""

    BOOKED = "booked"
    ALREADY_RESERVED = "already_reserved"
    AVAILABLE = "available"
    ABORTED = "aborted"


class PollState(str, Enum):
    """States the availability poller moves through."""

    IDLE = "idle"
    NAVIGATING = "navigating"
    RESOLVING_CODE_UI = "resolving_code_ui"
    INSPECTING = "inspecting"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    COMMITTING = "committing"
    DONE = "done"


@dataclass(frozen=True)
class ReservationRequest:
    """Everything the caller supplied for one run."""

    target: TargetDate
    username: str
    password: SecretStr
    sms_code: Optional[str] = None
    parking_code: Optional[str] = None
