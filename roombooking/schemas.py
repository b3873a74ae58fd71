from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from roombooking.models import BookingStatus, RoomStatus


class BookingRequest(BaseModel):
    """
    Raw create/update payload.
    Fields are deliberately loose so the validator, not pydantic, reports
    every problem with the request at once.
    """

    room_id: int | None = None
    borrower_name: str | None = None
    borrower_email: str | None = None
    borrower_phone: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    purpose: str | None = None

    @field_validator("room_id", "start_time", "end_time", mode="before")
    @classmethod
    def blank_as_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class BookingStatusUpdate(BaseModel):
    new_status: BookingStatus | None = None
    notes: str | None = Field(default=None, max_length=500)

    @field_validator("new_status", mode="before")
    @classmethod
    def blank_as_unselected(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class BookingResponse(BaseModel):
    id: int
    room_id: int
    borrower_name: str
    borrower_email: str
    borrower_phone: str
    start_time: datetime
    end_time: datetime
    purpose: str | None
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingEnriched(BookingResponse):
    """BookingResponse plus room details fetched from the rooms service."""

    room_name: str | None = None
    room_code: str | None = None
    room_status: RoomStatus | None = None


class BookingPage(BaseModel):
    items: list[BookingEnriched]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    sort_by: str
    sort_order: str


class BookingHistoryResponse(BaseModel):
    id: int
    booking_id: int
    old_status: BookingStatus | None
    new_status: BookingStatus
    notes: str | None
    changed_at: datetime
    changed_by: str

    model_config = ConfigDict(from_attributes=True)


class BookingTransitions(BaseModel):
    """What the UI may offer for a booking in its current status."""

    status: BookingStatus
    next_statuses: list[BookingStatus]
    can_edit: bool
    can_delete: bool


class BookingWindow(BaseModel):
    """Minimal occupied window — reveals no borrower identity."""

    start_time: datetime
    end_time: datetime

    model_config = ConfigDict(from_attributes=True)


SORTABLE_FIELDS = ("start_time", "end_time", "created_at", "borrower_name", "status")


class BookingFilters(BaseModel):
    """Bind to a FastAPI route as Annotated[BookingFilters, Query()]."""

    room_id: int | None = None
    status: BookingStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None

    sort_by: str = "created_at"
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$")

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)

    @field_validator("sort_by")
    @classmethod
    def known_sort_field(cls, v: str) -> str:
        if v not in SORTABLE_FIELDS:
            raise ValueError(f"sort_by must be one of {list(SORTABLE_FIELDS)}")
        return v
