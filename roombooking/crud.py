from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger
from tortoise.expressions import Q
from tortoise.queryset import QuerySet
from tortoise.transactions import in_transaction

from roombooking import lifecycle
from roombooking.errors import (
    BookingConflict,
    BookingNotEditable,
    BookingNotFound,
    StaleState,
)
from roombooking.lifecycle import StatusChange
from roombooking.models import Booking, BookingHistory, BookingStatus
from roombooking.schemas import (
    BookingFilters,
    BookingHistoryResponse,
    BookingResponse,
    BookingWindow,
)
from roombooking.validation import NormalizedBooking, overlapping

_ACTIVE_STATUSES = [BookingStatus.PENDING, BookingStatus.APPROVED]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BookingCRUD:
    """
    Tortoise-backed booking store.

    Every write that depends on a previously read status is a conditional
    UPDATE keyed on that status, so a decision taken against stale state
    touches zero rows and is reported instead of applied.
    """

    @staticmethod
    def _visible() -> QuerySet[Booking]:
        return Booking.filter(deleted_at__isnull=True)

    async def _raise_not_pending(self, booking_id: int) -> None:
        current = await self._visible().get_or_none(id=booking_id)
        if current is None:
            raise BookingNotFound(booking_id)
        raise BookingNotEditable(booking_id, current.status)

    def _active_in_window(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> QuerySet[Booking]:
        qs = self._visible().filter(
            room_id=room_id,
            status__in=_ACTIVE_STATUSES,
            start_time__lt=end,
            end_time__gt=start,
        )
        if exclude_id is not None:
            qs = qs.exclude(id=exclude_id)
        return qs

    async def _ensure_room_free(
        self, booking: NormalizedBooking, exclude_id: int | None = None
    ) -> None:
        """Must run inside the write's transaction; locks the competing rows."""
        rows = await self._active_in_window(
            booking.room_id, booking.start_time, booking.end_time, exclude_id
        ).select_for_update().only("start_time", "end_time")
        windows = [BookingWindow.model_validate(r, from_attributes=True) for r in rows]
        if overlapping(booking, windows):
            raise BookingConflict(booking.room_id)

    async def create_booking(
        self,
        booking: NormalizedBooking,
        changed_by: str,
        *,
        enforce_overlap: bool = False,
    ) -> BookingResponse:
        """
        Persist a Pending booking together with its "created" history row.
        With enforce_overlap, raises BookingConflict if an active booking of the
        same room intersects the window.
        """
        # Atomic check-then-insert: SELECT FOR UPDATE prevents double-booking
        async with in_transaction():
            if enforce_overlap:
                await self._ensure_room_free(booking)
            inst = await Booking.create(**booking.as_fields())
            await BookingHistory.create(
                **lifecycle.created().to_history(inst.id, changed_by)
            )

        logger.info("Booking {} created for room {}", inst.id, inst.room_id)
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def get_booking(self, booking_id: int) -> BookingResponse | None:
        inst = await self._visible().get_or_none(id=booking_id)
        if not inst:
            return None
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def list_bookings(
        self, filters: BookingFilters
    ) -> tuple[list[BookingResponse], int]:
        """Return one page of bookings and the total count matching the filters."""
        qs = self._visible()

        if filters.room_id is not None:
            qs = qs.filter(room_id=filters.room_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)
        if filters.start_date is not None:
            qs = qs.filter(start_time__gte=filters.start_date)
        if filters.end_date is not None:
            qs = qs.filter(end_time__lte=filters.end_date)
        if filters.search and filters.search.strip():
            term = filters.search.strip()
            qs = qs.filter(
                Q(borrower_name__icontains=term)
                | Q(borrower_email__icontains=term)
                | Q(borrower_phone__icontains=term)
                | Q(purpose__icontains=term)
            )

        total = await qs.count()

        order = filters.sort_by if filters.sort_order == "asc" else f"-{filters.sort_by}"
        offset = (filters.page - 1) * filters.page_size
        bookings = await qs.order_by(order, "id").offset(offset).limit(filters.page_size)

        items = [
            BookingResponse.model_validate(b, from_attributes=True) for b in bookings
        ]
        return items, total

    async def update_booking_fields(
        self,
        booking_id: int,
        booking: NormalizedBooking,
        *,
        enforce_overlap: bool = False,
    ) -> BookingResponse:
        """Overwrite all request fields; only succeeds while the booking is Pending."""
        async with in_transaction():
            if enforce_overlap:
                await self._ensure_room_free(booking, exclude_id=booking_id)
            updated = await self._visible().filter(
                id=booking_id, status=BookingStatus.PENDING
            ).update(**booking.as_fields(), updated_at=_now())
            if not updated:
                await self._raise_not_pending(booking_id)

            inst = await Booking.get(id=booking_id)
        logger.info("Booking {} fields updated", booking_id)
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def delete_booking(self, booking_id: int) -> None:
        """Soft-delete a Pending booking. History rows are kept."""
        deleted = await self._visible().filter(
            id=booking_id, status=BookingStatus.PENDING
        ).update(deleted_at=_now())
        if not deleted:
            await self._raise_not_pending(booking_id)
        logger.info("Booking {} deleted", booking_id)

    async def change_status(
        self, booking_id: int, change: StatusChange, changed_by: str
    ) -> BookingResponse:
        """
        Apply an accepted transition and append its history row atomically.
        Raises StaleState if the stored status is no longer change.old_status.
        """
        async with in_transaction():
            updated = await self._visible().filter(
                id=booking_id, status=change.old_status
            ).update(status=change.new_status, updated_at=_now())
            if not updated:
                current = await self._visible().get_or_none(id=booking_id)
                if current is None:
                    raise BookingNotFound(booking_id)
                raise StaleState(booking_id, change.old_status)  # type: ignore[arg-type]

            await BookingHistory.create(**change.to_history(booking_id, changed_by))
            inst = await Booking.get(id=booking_id)

        logger.info(
            "Booking {} moved {} -> {} by {}",
            booking_id,
            change.old_status,
            change.new_status,
            changed_by,
        )
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def list_history(self, booking_id: int) -> list[BookingHistoryResponse]:
        """Audit trail for a booking, oldest first."""
        rows = await BookingHistory.filter(booking_id=booking_id).order_by("id")
        return [
            BookingHistoryResponse.model_validate(r, from_attributes=True) for r in rows
        ]

    async def list_active_windows(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_id: int | None = None,
    ) -> list[BookingWindow]:
        """Pending/Approved windows for a room that intersect [start, end)."""
        rows = await self._active_in_window(room_id, start, end, exclude_id).only(
            "start_time", "end_time"
        )
        return [BookingWindow.model_validate(r, from_attributes=True) for r in rows]


booking_crud = BookingCRUD()
