import math
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger

from roombooking import settings
from roombooking.cache import (
    get_history_cache,
    invalidate_history_cache,
    set_history_cache,
)
from roombooking.crud import booking_crud
from roombooking.deps import Actor, RoomsClient, get_actor, get_now, get_rooms_client
from roombooking.errors import (
    BookingConflict,
    BookingError,
    BookingNotEditable,
    BookingNotFound,
    BookingValidationError,
    CollaboratorFailure,
    StaleState,
)
from roombooking.lifecycle import can_delete, can_edit_fields, legal_next, transition
from roombooking.models import RoomStatus
from roombooking.schemas import (
    BookingEnriched,
    BookingFilters,
    BookingHistoryResponse,
    BookingPage,
    BookingRequest,
    BookingResponse,
    BookingStatusUpdate,
    BookingTransitions,
    BookingWindow,
)
from roombooking.validation import NormalizedBooking, to_utc, validate_booking

router = APIRouter(prefix="/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def _http_error(exc: BookingError) -> HTTPException:
    """Map a domain error onto the HTTP status the UI expects."""
    if isinstance(exc, BookingValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"title": str(exc), "errors": exc.errors.as_messages()},
        )
    if isinstance(exc, BookingNotFound):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    if isinstance(exc, (StaleState, BookingConflict)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _upstream_error(exc: CollaboratorFailure) -> HTTPException:
    logger.error("Collaborator failure: {}", exc)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


async def _get_or_404(booking_id: int) -> BookingResponse:
    booking = await booking_crud.get_booking(booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


# ---------------------------------------------------------------------------
# Enrichment helper
# ---------------------------------------------------------------------------


def _room_map(rooms_raw: list[dict]) -> dict[int, dict]:
    """Index rooms by id, skipping rows the rooms service sent malformed."""
    room_map: dict[int, dict] = {}
    for r in rooms_raw:
        try:
            room_map[int(r["id"])] = r
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed room from rooms service: {}", r)
    return room_map


def _room_status(room: dict) -> RoomStatus | None:
    try:
        return RoomStatus(room["status"])
    except (KeyError, ValueError):
        return None


async def _enrich(
    bookings: list,
    actor: Actor,
    rooms_client: RoomsClient,
) -> list[BookingEnriched]:
    """
    Convert raw bookings into BookingEnriched by fetching room details
    from the rooms service. Degrades gracefully — room fields become None on error.
    """
    if not bookings:
        return []

    parsed = [BookingResponse.model_validate(b, from_attributes=True) for b in bookings]
    rooms_raw = await rooms_client.get_by_ids({b.room_id for b in parsed}, actor)
    room_map = _room_map(rooms_raw)

    result = []
    for b in parsed:
        room = room_map.get(b.room_id, {})
        result.append(
            BookingEnriched(
                **b.model_dump(),
                room_name=room.get("name"),
                room_code=room.get("code"),
                room_status=_room_status(room),
            )
        )
    return result


# ---------------------------------------------------------------------------
# Request validation pipeline
# ---------------------------------------------------------------------------


async def _validate_request(
    payload: BookingRequest,
    now: datetime,
    actor: Actor,
    rooms_client: RoomsClient,
) -> NormalizedBooking:
    """
    Validate the payload. With STRICT_ROOM_CHECK on, unknown room ids fail
    as InvalidRoom. The overlap check (ENFORCE_ROOM_OVERLAP) runs in the
    store, inside the write's transaction.
    """
    room_exists = None
    if settings.STRICT_ROOM_CHECK and payload.room_id and payload.room_id > 0:
        try:
            room_exists = await rooms_client.room_exists(payload.room_id, actor)
        except CollaboratorFailure as exc:
            raise _upstream_error(exc) from None

    try:
        return validate_booking(payload, now, room_exists=room_exists)
    except BookingValidationError as exc:
        logger.debug("Booking request rejected: {}", exc.errors.codes())
        raise _http_error(exc) from None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/slots", response_model=list[BookingWindow])
async def get_room_slots(
    room_id: int,
    start: datetime,
    end: datetime,
) -> list[BookingWindow]:
    """
    Returns Pending/Approved windows of a room that intersect [start, end).
    Response contains NO borrower identity.
    """
    start, end = to_utc(start), to_utc(end)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must be after start",
        )
    return await booking_crud.list_active_windows(room_id, start, end)


@router.get("/", response_model=BookingPage)
async def list_bookings(
    filters: Annotated[BookingFilters, Query()],
    actor: Actor = Depends(get_actor),
    rooms_client: RoomsClient = Depends(get_rooms_client),
) -> BookingPage:
    bookings, total = await booking_crud.list_bookings(filters=filters)
    return BookingPage(
        items=await _enrich(bookings, actor, rooms_client),
        total_count=total,
        page=filters.page,
        page_size=filters.page_size,
        total_pages=math.ceil(total / filters.page_size),
        sort_by=filters.sort_by,
        sort_order=filters.sort_order,
    )


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingRequest,
    now: datetime = Depends(get_now),
    actor: Actor = Depends(get_actor),
    rooms_client: RoomsClient = Depends(get_rooms_client),
) -> BookingResponse:
    booking = await _validate_request(payload, now, actor, rooms_client)
    try:
        return await booking_crud.create_booking(
            booking,
            changed_by=actor.name,
            enforce_overlap=settings.ENFORCE_ROOM_OVERLAP,
        )
    except BookingConflict as exc:
        raise _http_error(exc) from None


@router.get("/{booking_id}", response_model=BookingEnriched)
async def get_booking(
    booking_id: int,
    actor: Actor = Depends(get_actor),
    rooms_client: RoomsClient = Depends(get_rooms_client),
) -> BookingEnriched:
    booking = await _get_or_404(booking_id)
    results = await _enrich([booking], actor, rooms_client)
    return results[0]


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    payload: BookingRequest,
    now: datetime = Depends(get_now),
    actor: Actor = Depends(get_actor),
    rooms_client: RoomsClient = Depends(get_rooms_client),
) -> BookingResponse:
    booking = await _get_or_404(booking_id)
    if not can_edit_fields(booking.status):
        raise _http_error(BookingNotEditable(booking_id, booking.status))

    normalized = await _validate_request(payload, now, actor, rooms_client)
    try:
        return await booking_crud.update_booking_fields(
            booking_id, normalized, enforce_overlap=settings.ENFORCE_ROOM_OVERLAP
        )
    except BookingError as exc:
        raise _http_error(exc) from None


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(booking_id: int) -> None:
    booking = await _get_or_404(booking_id)
    if not can_delete(booking.status):
        raise _http_error(BookingNotEditable(booking_id, booking.status))

    try:
        await booking_crud.delete_booking(booking_id)
    except BookingError as exc:
        raise _http_error(exc) from None
    await invalidate_history_cache(booking_id, booking.updated_at)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    actor: Actor = Depends(get_actor),
) -> BookingResponse:
    # Decide against the status as stored right now; the store re-checks it
    # when writing and reports StaleState if it moved in between.
    booking = await _get_or_404(booking_id)

    try:
        change = transition(booking.status, payload.new_status, payload.notes)
        updated = await booking_crud.change_status(
            booking_id, change, changed_by=actor.name
        )
    except BookingError as exc:
        raise _http_error(exc) from None

    await invalidate_history_cache(booking_id, booking.updated_at)
    return updated


@router.get("/{booking_id}/history", response_model=list[BookingHistoryResponse])
async def get_booking_history(booking_id: int) -> list[BookingHistoryResponse]:
    booking = await _get_or_404(booking_id)
    cached = await get_history_cache(booking_id, booking.updated_at)
    if cached is not None:
        logger.debug("Cache hit for history: booking_id={}", booking_id)
        return [BookingHistoryResponse(**e) for e in cached]

    logger.debug("Cache miss for history: booking_id={}", booking_id)
    entries = await booking_crud.list_history(booking_id)
    await set_history_cache(
        booking_id, booking.updated_at, [e.model_dump(mode="json") for e in entries]
    )
    return entries


@router.get("/{booking_id}/transitions", response_model=BookingTransitions)
async def get_booking_transitions(booking_id: int) -> BookingTransitions:
    booking = await _get_or_404(booking_id)
    return BookingTransitions(
        status=booking.status,
        next_statuses=legal_next(booking.status),
        can_edit=can_edit_fields(booking.status),
        can_delete=can_delete(booking.status),
    )
