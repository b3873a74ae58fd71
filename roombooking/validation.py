"""
Pure validation of booking requests.

Nothing here touches the database, the network or the wall clock: the
caller injects `now` (and, for the strict variant, whether the room exists),
so the same request always validates to the same result.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Iterable

from roombooking.errors import BookingValidationError, ValidationCode
from roombooking.schemas import BookingRequest, BookingWindow

NAME_MAX_LENGTH = 100
PURPOSE_MAX_LENGTH = 500
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 13

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NON_DIGIT_RE = re.compile(r"\D")


@dataclass(frozen=True)
class FieldError:
    code: ValidationCode
    message: str


@dataclass(frozen=True)
class FieldErrors:
    """One optional error slot per request field."""

    room_id: FieldError | None = None
    borrower_name: FieldError | None = None
    borrower_email: FieldError | None = None
    borrower_phone: FieldError | None = None
    start_time: FieldError | None = None
    end_time: FieldError | None = None
    purpose: FieldError | None = None

    def __bool__(self) -> bool:
        return any(getattr(self, f.name) is not None for f in fields(self))

    def items(self) -> list[tuple[str, FieldError]]:
        return [
            (f.name, getattr(self, f.name))
            for f in fields(self)
            if getattr(self, f.name) is not None
        ]

    def codes(self) -> dict[str, ValidationCode]:
        return {name: err.code for name, err in self.items()}

    def as_messages(self) -> dict[str, list[str]]:
        """Shape consumed by forms: field name -> list of messages."""
        return {name: [err.message] for name, err in self.items()}


@dataclass(frozen=True)
class NormalizedBooking:
    room_id: int
    borrower_name: str
    borrower_email: str
    borrower_phone: str
    start_time: datetime
    end_time: datetime
    purpose: str | None

    def as_fields(self) -> dict:
        return asdict(self)


def to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is UTC-aware, handling both aware and naive inputs."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_minute(dt: datetime) -> datetime:
    return to_utc(dt).replace(second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Per-field checks — each returns the first violation for its field, or None
# ---------------------------------------------------------------------------


def _check_room(room_id: int | None, room_exists: bool | None) -> FieldError | None:
    if room_id is None or room_id <= 0:
        return FieldError(ValidationCode.INVALID_ROOM, "Room is required")
    if room_exists is False:
        return FieldError(ValidationCode.INVALID_ROOM, "Room does not exist")
    return None


def _check_name(name: str) -> FieldError | None:
    if not name:
        return FieldError(ValidationCode.REQUIRED_FIELD, "Borrower name is required")
    if len(name) > NAME_MAX_LENGTH:
        return FieldError(
            ValidationCode.TOO_LONG,
            f"Borrower name must be at most {NAME_MAX_LENGTH} characters",
        )
    return None


def _check_email(email: str) -> FieldError | None:
    if not email:
        return FieldError(ValidationCode.REQUIRED_FIELD, "Email is required")
    if not _EMAIL_RE.match(email):
        return FieldError(ValidationCode.INVALID_FORMAT, "Email format is invalid")
    return None


def _check_phone(phone: str) -> FieldError | None:
    if not phone:
        return FieldError(ValidationCode.REQUIRED_FIELD, "Phone number is required")
    digits = _NON_DIGIT_RE.sub("", phone)
    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        return FieldError(
            ValidationCode.INVALID_FORMAT,
            f"Phone number must have {PHONE_MIN_DIGITS}-{PHONE_MAX_DIGITS} digits",
        )
    return None


def _check_start(start: datetime | None, now: datetime) -> FieldError | None:
    if start is None:
        return FieldError(ValidationCode.REQUIRED_FIELD, "Start time is required")
    if start < now:
        return FieldError(
            ValidationCode.PAST_DATETIME, "Start time cannot be in the past"
        )
    return None


def _check_end(start: datetime | None, end: datetime | None) -> FieldError | None:
    if end is None:
        return FieldError(ValidationCode.REQUIRED_FIELD, "End time is required")
    # Ordering can only be judged when both ends are known
    if start is not None and end <= start:
        return FieldError(
            ValidationCode.END_BEFORE_START, "End time must be after start time"
        )
    return None


def _check_purpose(purpose: str | None) -> FieldError | None:
    if purpose is not None and len(purpose) > PURPOSE_MAX_LENGTH:
        return FieldError(
            ValidationCode.TOO_LONG,
            f"Purpose must be at most {PURPOSE_MAX_LENGTH} characters",
        )
    return None


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def validate_booking(
    request: BookingRequest,
    now: datetime,
    *,
    room_exists: bool | None = None,
) -> NormalizedBooking:
    """
    Check a create/update request and return its normalized form.

    Every field is checked independently; all violations are raised together
    in a single BookingValidationError. Timestamps are compared in UTC at
    minute precision. Pass `room_exists` from the room directory to also
    reject unknown rooms; leave it None to skip that check.
    """
    name = (request.borrower_name or "").strip()
    email = (request.borrower_email or "").strip()
    phone = (request.borrower_phone or "").strip()
    purpose = (request.purpose or "").strip() or None
    start = to_minute(request.start_time) if request.start_time else None
    end = to_minute(request.end_time) if request.end_time else None

    errors = FieldErrors(
        room_id=_check_room(request.room_id, room_exists),
        borrower_name=_check_name(name),
        borrower_email=_check_email(email),
        borrower_phone=_check_phone(phone),
        start_time=_check_start(start, to_minute(now)),
        end_time=_check_end(start, end),
        purpose=_check_purpose(purpose),
    )
    if errors:
        raise BookingValidationError(errors)

    return NormalizedBooking(
        room_id=request.room_id,  # type: ignore[arg-type]
        borrower_name=name,
        borrower_email=email,
        borrower_phone=phone,
        start_time=start,  # type: ignore[arg-type]
        end_time=end,  # type: ignore[arg-type]
        purpose=purpose,
    )


def overlapping(booking: NormalizedBooking, windows: Iterable[BookingWindow]) -> bool:
    """Return True if [start, end) of the booking overlaps any window."""
    for w in windows:
        if booking.start_time < to_utc(w.end_time) and booking.end_time > to_utc(
            w.start_time
        ):
            return True
    return False
