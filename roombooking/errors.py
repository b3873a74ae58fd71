"""
Domain errors raised by the validator, the status machine and the booking store.

Two disjoint taxonomies:
  - field-scoped validation errors, collected into a FieldErrors record and
    raised together as BookingValidationError
  - booking-scoped errors (TransitionError and friends), one per attempt

CollaboratorFailure wraps infrastructure failures of external services and
belongs to neither.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from roombooking.models import BookingStatus
    from roombooking.validation import FieldErrors


class ValidationCode(StrEnum):
    REQUIRED_FIELD = "RequiredField"
    TOO_LONG = "TooLong"
    INVALID_FORMAT = "InvalidFormat"
    INVALID_ROOM = "InvalidRoom"
    PAST_DATETIME = "PastDateTime"
    END_BEFORE_START = "EndBeforeStart"


class BookingError(Exception):
    """Base class for every error the booking core raises."""


class BookingValidationError(BookingError):
    def __init__(self, errors: FieldErrors) -> None:
        self.errors = errors
        super().__init__("One or more validation errors occurred.")


class BookingNotFound(BookingError):
    def __init__(self, booking_id: int) -> None:
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class BookingNotEditable(BookingError):
    def __init__(self, booking_id: int, status: BookingStatus) -> None:
        self.booking_id = booking_id
        self.status = status
        super().__init__(
            f"Booking {booking_id} can only be changed while Pending "
            f"(current status: {status})"
        )


class BookingConflict(BookingError):
    def __init__(self, room_id: int) -> None:
        self.room_id = room_id
        super().__init__(f"Room {room_id} is already booked for this time window")


class TransitionError(BookingError):
    """A status change that must be re-fetched and retried by the user."""


class NoStatusSelected(TransitionError):
    def __init__(self) -> None:
        super().__init__("Please select a new status")


class IllegalTransition(TransitionError):
    def __init__(
        self,
        current: BookingStatus,
        requested: str,
        allowed: list[BookingStatus],
    ) -> None:
        self.current = current
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Cannot transition from '{current}' to '{requested}'. "
            f"Allowed: {[s.value for s in allowed]}"
        )


class StaleState(TransitionError):
    def __init__(self, booking_id: int, expected: BookingStatus) -> None:
        self.booking_id = booking_id
        self.expected = expected
        super().__init__(
            f"Booking {booking_id} is no longer '{expected}'; "
            "reload it and try again"
        )


class CollaboratorFailure(Exception):
    """An external collaborator (rooms service, storage) failed. Opaque."""

    def __init__(self, collaborator: str, detail: str) -> None:
        self.collaborator = collaborator
        self.detail = detail
        super().__init__(f"{collaborator}: {detail}")
