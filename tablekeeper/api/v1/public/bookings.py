from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Response, status

from tablekeeper.api.deps import get_optional_staff, get_orchestrator, get_status_service
from tablekeeper.core.exceptions import BookingNotFound
from tablekeeper.engine.orchestrator import BookingOrchestrator, BookingResult, BookingState
from tablekeeper.engine.status import BookingStatusService
from tablekeeper.engine.types import BookingRequest
from tablekeeper.models.booking import Booking
from tablekeeper.schemas.booking import (
    Booking as BookingSchema,
    BookingCancelRequest,
    BookingCreate,
    BookingResult as BookingResultSchema,
    BookingTableSummary,
)
from tablekeeper.schemas.common import ErrorResponse
from tablekeeper.schemas.waitlist import WaitlistReceipt

BOOKING_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def serialize_booking(booking: Booking) -> BookingSchema:
    """Convert a Booking ORM object to its schema representation."""
    tables = [
        BookingTableSummary(table_id=bt.table_id, number=bt.table.number if bt.table else None)
        for bt in booking.tables
    ]
    return BookingSchema(
        id=booking.id,
        restaurant_id=booking.restaurant_id,
        confirmation_code=booking.confirmation_code,
        party_size=booking.party_size,
        booking_date=booking.booking_date,
        start_time=booking.start_time,
        duration_minutes=booking.duration_minutes,
        status=booking.status,
        source=booking.source,
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
        customer_phone=booking.customer_phone,
        notes=booking.notes,
        cancelled_at=booking.cancelled_at,
        created_at=booking.created_at,
        tables=tables,
    )


def render_result(result: BookingResult, response: Response) -> BookingResultSchema:
    """Raise the typed failure, or render the booking / waitlist receipt."""
    if not result.ok:
        raise result.error
    if result.state is BookingState.waitlisted:
        response.status_code = status.HTTP_202_ACCEPTED
        return BookingResultSchema(
            state=result.state.value,
            waitlist_receipt=WaitlistReceipt.model_validate(result.waitlist_receipt),
        )
    return BookingResultSchema(state=result.state.value, booking=serialize_booking(result.booking))


# ---------------------------------------------------------------------------
# POST /bookings
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResultSchema,
    status_code=status.HTTP_201_CREATED,
    responses=BOOKING_ERROR_RESPONSES,
)
def create_booking(
    payload: BookingCreate,
    response: Response,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """
    Reserve a table for a guest.

    201 with the booking, 202 with a waitlist receipt when the slot is full
    and ``join_waitlist`` was set, otherwise the typed error (409 no capacity,
    503 lock timeout, ...).
    """
    request = BookingRequest(
        restaurant_id=payload.restaurant_id,
        booking_date=payload.booking_date,
        start_time=payload.start_time,
        party_size=payload.party_size,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        notes=payload.notes,
        source="guest",
        join_waitlist=payload.join_waitlist,
    )
    return render_result(orchestrator.create_booking(request), response)


# ---------------------------------------------------------------------------
# Lookup & cancel
# ---------------------------------------------------------------------------


@router.get("/lookup/{confirmation_code}", response_model=BookingSchema)
def lookup_booking(
    confirmation_code: str,
    service: BookingStatusService = Depends(get_status_service),
):
    return serialize_booking(service.get_by_code(confirmation_code))


@router.post("/{booking_id}/cancel", response_model=BookingSchema)
def cancel_booking(
    booking_id: UUID,
    payload: Optional[BookingCancelRequest] = Body(default=None),
    staff: Optional[dict] = Depends(get_optional_staff),
    service: BookingStatusService = Depends(get_status_service),
):
    """
    Staff cancel any booking; guests must present its confirmation code.
    Cancelling an already-cancelled booking returns it unchanged.
    """
    if staff is None:
        code = payload.confirmation_code if payload else None
        if not code:
            raise BookingNotFound("Booking not found", {"booking_id": str(booking_id)})
        booking = service.get_by_code(code)
        # A code for another booking reveals nothing
        if booking.id != booking_id:
            raise BookingNotFound("Booking not found", {"booking_id": str(booking_id)})
    return serialize_booking(service.cancel(booking_id))
