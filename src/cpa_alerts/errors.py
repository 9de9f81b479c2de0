"""Exception hierarchy for CPA Alerts."""

from typing import Any


class AlertsError(Exception):
    """Base exception for CPA Alerts errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class ConfigurationError(AlertsError):
    """Reference data is missing or malformed."""

    pass


class NotFoundError(AlertsError):
    """The requested alert, reminder, rule or client does not exist."""

    pass


class InvariantViolation(AlertsError):
    """The requested action is not permitted in the current state."""

    pass


class TransientIOError(AlertsError):
    """A persisted store read or write failed; the caller may retry."""

    pass
