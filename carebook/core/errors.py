# carebook/core/errors.py
from __future__ import annotations

from starlette import status


# Service-level errors (mapped to HTTP once, in main.py)
class BookingError(Exception):
    """
    Base class for every business-rule rejection raised by the services.

    code:
        short snake_case identifier returned as `detail`
    message:
        human readable explanation returned as `message`
    """

    code = "booking_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.code.replace("_", " ")
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(BookingError):
    """Malformed time slot, unparseable date, missing required field."""

    code = "validation_error"


class PastDateError(BookingError):
    code = "date_not_in_future"


class ConflictError(BookingError):
    """
    Overlapping schedule entries, double booking, or blocking an
    already blocked range.
    """

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class CoverageError(BookingError):
    code = "not_covered_by_schedule"
    status_code = status.HTTP_409_CONFLICT


class LockoutError(BookingError):
    """Availability change inside the lockout window before a slot starts."""

    code = "too_close_to_scheduled_time"


class NotFoundError(BookingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateTransitionError(BookingError):
    code = "invalid_state_transition"
    status_code = status.HTTP_409_CONFLICT


class DataIntegrityError(BookingError):
    """A persisted row cannot be interpreted (e.g. unusable time slot)."""

    code = "data_integrity_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


__all__ = [
    "BookingError",
    "ValidationError",
    "PastDateError",
    "ConflictError",
    "CoverageError",
    "LockoutError",
    "NotFoundError",
    "InvalidStateTransitionError",
    "DataIntegrityError",
]
