from __future__ import annotations

from dataclasses import dataclass

from roombooking.errors import IllegalTransition, NoStatusSelected
from roombooking.models import BookingStatus

LEGAL_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.APPROVED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.APPROVED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    BookingStatus.REJECTED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

_DISPLAY_ORDER = list(BookingStatus)


@dataclass(frozen=True)
class StatusChange:
    """An accepted transition, not yet stamped with who/when by the store."""

    old_status: BookingStatus | None
    new_status: BookingStatus
    notes: str | None = None

    def to_history(self, booking_id: int, changed_by: str) -> dict:
        return {
            "booking_id": booking_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "notes": self.notes,
            "changed_by": changed_by,
        }


def legal_next(status: BookingStatus) -> list[BookingStatus]:
    """Statuses reachable from `status`, in enum declaration order."""
    allowed = LEGAL_TRANSITIONS[status]
    return [s for s in _DISPLAY_ORDER if s in allowed]


def is_terminal(status: BookingStatus) -> bool:
    return not LEGAL_TRANSITIONS[status]


def can_edit_fields(status: BookingStatus) -> bool:
    return status == BookingStatus.PENDING


def can_delete(status: BookingStatus) -> bool:
    return status == BookingStatus.PENDING


def _normalize_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    return notes.strip() or None


def transition(
    current: BookingStatus,
    requested: BookingStatus | str | None,
    notes: str | None = None,
) -> StatusChange:
    """
    Decide whether `current` may move to `requested`.

    Raises NoStatusSelected when nothing was requested and IllegalTransition
    when the target is not reachable from `current` (terminal states reach
    nothing). The caller supplies `current` straight from the store and must
    persist the result with a compare-and-set on it.
    """
    if requested is None or not str(requested).strip():
        raise NoStatusSelected()

    allowed = legal_next(current)
    try:
        target = BookingStatus(str(requested).strip())
    except ValueError:
        raise IllegalTransition(current, str(requested), allowed) from None

    if target not in allowed:
        raise IllegalTransition(current, target, allowed)

    return StatusChange(
        old_status=current, new_status=target, notes=_normalize_notes(notes)
    )


def created(notes: str | None = None) -> StatusChange:
    """Synthetic entry recorded when a booking is first stored."""
    return StatusChange(
        old_status=None, new_status=BookingStatus.PENDING, notes=_normalize_notes(notes)
    )
