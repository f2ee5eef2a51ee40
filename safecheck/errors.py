"""Error taxonomy for check-in operations.

Each error carries the HTTP status the API layer maps it to, so routes can
let domain errors propagate instead of translating them one by one.
"""

from __future__ import annotations


class CheckInError(Exception):
    """Base class for check-in domain errors."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__doc__ or ""
        super().__init__(self.message)


class ValidationError(CheckInError):
    """Malformed input; the caller can correct it and retry."""

    status_code = 400


class InvalidCodeError(ValidationError):
    """Invalid verification code. Please try again."""


class NotFoundError(CheckInError):
    """Check-in not found."""

    status_code = 404


class AlreadyExistsError(CheckInError):
    """A record with this id already exists."""

    status_code = 409


class ConflictError(CheckInError):
    """Conditional write lost: the record was no longer in the expected status."""

    status_code = 409

    def __init__(self, message: str = "", current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class DeadlinePassedError(CheckInError):
    """Check-in deadline has passed and emergency contacts have been notified."""

    status_code = 410


class DeliveryError(CheckInError):
    """A notification channel failed to deliver a message."""

    status_code = 502

    def __init__(self, channel: str, target: str, detail: str = "") -> None:
        self.channel = channel
        self.target = target
        self.detail = detail
        super().__init__(f"{channel} delivery to {target} failed: {detail}")
