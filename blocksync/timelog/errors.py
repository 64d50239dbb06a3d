"""Exceptions raised by the time-log integration."""

from typing import Dict, Optional


class TimeLogError(Exception):
    """Base class for time-log failures that abort a sync."""


class ConfigurationError(TimeLogError):
    """Connection settings are missing or invalid. Raised before any request."""

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        super().__init__(
            message or "TimeLog settings are incomplete. Please review the TimeLog settings."
        )


class AuthorizationError(TimeLogError):
    """The service rejected the credentials (HTTP 401/403)."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class TimeLogRequestError(TimeLogError):
    """A request failed for good: non-retryable status, exhausted retries, or transport error."""

    def __init__(self, message: str, status_code: Optional[int] = None, context: str = ""):
        self.status_code = status_code
        self.context = context
        super().__init__(message)
