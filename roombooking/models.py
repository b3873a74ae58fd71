from enum import StrEnum

from tortoise import fields
from tortoise.models import Model


class BookingStatus(StrEnum):
    PENDING = "Pending"  # just created, awaiting moderation
    APPROVED = "Approved"  # moderator accepted
    REJECTED = "Rejected"  # moderator refused
    CANCELLED = "Cancelled"  # withdrawn before it took place
    COMPLETED = "Completed"  # booking period elapsed, marked done


class RoomStatus(StrEnum):
    AVAILABLE = "Available"
    UNDER_MAINTENANCE = "UnderMaintenance"
    OCCUPIED = "Occupied"


class Booking(Model):
    id = fields.IntField(primary_key=True)

    room_id = fields.IntField()  # owned by the rooms service

    borrower_name = fields.CharField(max_length=100)
    borrower_email = fields.CharField(max_length=255)
    borrower_phone = fields.CharField(max_length=32)

    start_time = fields.DatetimeField()
    end_time = fields.DatetimeField()
    purpose = fields.CharField(max_length=500, null=True)

    status = fields.CharEnumField(
        BookingStatus, max_length=16, default=BookingStatus.PENDING
    )

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)
    deleted_at = fields.DatetimeField(null=True)  # soft delete marker

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]


class BookingHistory(Model):
    """Append-only audit row, one per accepted status change."""

    id = fields.IntField(primary_key=True)
    booking_id = fields.IntField(db_index=True)

    old_status = fields.CharEnumField(BookingStatus, max_length=16, null=True)
    new_status = fields.CharEnumField(BookingStatus, max_length=16)
    notes = fields.TextField(null=True)

    changed_at = fields.DatetimeField(auto_now_add=True)
    changed_by = fields.CharField(max_length=100)

    class Meta:  # type: ignore
        table = "booking_history"
        ordering = ["id"]
