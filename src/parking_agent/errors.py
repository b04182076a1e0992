"""Exception types raised by the parking agent."""

from __future__ import annotations


class ParkingAgentError(RuntimeError):
    """Base class for errors raised by the agent."""


class InvalidDateError(ParkingAgentError, ValueError):
    """The target date could not be understood."""


class SiteElementMissing(ParkingAgentError):
    """An expected element was not present on the resort site."""


class SmsVerificationError(ParkingAgentError):
    """The SMS challenge after login could not be completed."""


class ReservationCommitError(ParkingAgentError):
    """A step of the purchase flow failed; the attempt is not retried."""


class BrowserBootstrapError(ParkingAgentError):
    """Chrome could not be started or attached to."""


class NotificationError(ParkingAgentError):
    """A text message could not be delivered."""
