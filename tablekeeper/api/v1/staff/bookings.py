from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from tablekeeper.api.deps import get_current_staff, get_orchestrator, get_repository, get_status_service
from tablekeeper.api.v1.public.bookings import BOOKING_ERROR_RESPONSES, render_result, serialize_booking
from tablekeeper.core.config import settings
from tablekeeper.engine.availability import get_availability
from tablekeeper.engine.orchestrator import BookingOrchestrator
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.engine.status import BookingStatusService
from tablekeeper.engine.types import BookingChanges, BookingRequest
from tablekeeper.schemas.availability import AvailabilityResponse, TimeSlot
from tablekeeper.schemas.booking import (
    Booking as BookingSchema,
    BookingResult as BookingResultSchema,
    BookingUpdate,
    StaffBookingCreate,
)

router = APIRouter(prefix="/staff/bookings", tags=["Staff Bookings"])
restaurant_router = APIRouter(prefix="/staff/restaurants", tags=["Staff Bookings"])


# ---------------------------------------------------------------------------
# POST /staff/bookings
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResultSchema,
    status_code=status.HTTP_201_CREATED,
    responses=BOOKING_ERROR_RESPONSES,
)
def create_staff_booking(
    payload: StaffBookingCreate,
    response: Response,
    staff: dict = Depends(get_current_staff),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Phone and walk-in bookings. ``override_caps`` ignores the pacing caps, never table conflicts."""
    request = BookingRequest(
        restaurant_id=payload.restaurant_id,
        booking_date=payload.booking_date,
        start_time=payload.start_time,
        party_size=payload.party_size,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        notes=payload.notes,
        source="staff",
        override_caps=payload.override_caps,
        join_waitlist=payload.join_waitlist,
    )
    return render_result(orchestrator.create_booking(request), response)


@router.get("/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: UUID,
    staff: dict = Depends(get_current_staff),
    repository: BookingRepository = Depends(get_repository),
):
    return serialize_booking(repository.get_booking(booking_id))


# ---------------------------------------------------------------------------
# PUT /staff/bookings/{id}
# ---------------------------------------------------------------------------


@router.put("/{booking_id}", response_model=BookingSchema, responses=BOOKING_ERROR_RESPONSES)
def update_booking(
    booking_id: UUID,
    payload: BookingUpdate,
    staff: dict = Depends(get_current_staff),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Move or resize a booking. Tables are chosen again and the duration re-frozen."""
    result = orchestrator.modify_booking(
        booking_id,
        BookingChanges(
            booking_date=payload.booking_date,
            start_time=payload.start_time,
            party_size=payload.party_size,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone=payload.customer_phone,
            notes=payload.notes,
            override_caps=payload.override_caps,
        ),
    )
    if not result.ok:
        raise result.error
    return serialize_booking(result.booking)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/no-show", response_model=BookingSchema)
def mark_no_show(
    booking_id: UUID,
    staff: dict = Depends(get_current_staff),
    service: BookingStatusService = Depends(get_status_service),
):
    return serialize_booking(service.mark_no_show(booking_id))


@router.post("/{booking_id}/confirm", response_model=BookingSchema)
def confirm_booking(
    booking_id: UUID,
    staff: dict = Depends(get_current_staff),
    service: BookingStatusService = Depends(get_status_service),
):
    return serialize_booking(service.confirm(booking_id))


@router.post("/{booking_id}/complete", response_model=BookingSchema)
def complete_booking(
    booking_id: UUID,
    staff: dict = Depends(get_current_staff),
    service: BookingStatusService = Depends(get_status_service),
):
    return serialize_booking(service.complete(booking_id))


# ---------------------------------------------------------------------------
# GET /staff/restaurants/{id}/availability
# ---------------------------------------------------------------------------


@restaurant_router.get("/{restaurant_id}/availability", response_model=AvailabilityResponse)
def staff_availability(
    restaurant_id: UUID,
    on_date: date = Query(..., alias="date"),
    party_size: int = Query(...),
    override_caps: bool = Query(False),
    staff: dict = Depends(get_current_staff),
    repository: BookingRepository = Depends(get_repository),
):
    """Same as the public view, without the minimum notice and optionally without pacing caps."""
    slots = get_availability(
        repository,
        restaurant_id,
        on_date,
        party_size,
        override_caps=override_caps,
        max_tables=settings.MAX_COMBINATION_TABLES,
        require_notice=False,
    )
    return AvailabilityResponse(
        restaurant_id=restaurant_id,
        date=on_date,
        party_size=party_size,
        slots=[TimeSlot.model_validate(s) for s in slots],
    )


# ---------------------------------------------------------------------------
# GET /staff/restaurants/{id}/bookings
# ---------------------------------------------------------------------------


@restaurant_router.get("/{restaurant_id}/bookings", response_model=List[BookingSchema])
def list_bookings(
    restaurant_id: UUID,
    on_date: date = Query(..., alias="date"),
    booking_status: Optional[str] = Query(None, alias="status"),
    staff: dict = Depends(get_current_staff),
    repository: BookingRepository = Depends(get_repository),
):
    """The day's bookings in start-time order, optionally of one status."""
    bookings = repository.list_bookings_for_date(restaurant_id, on_date, booking_status)
    return [serialize_booking(b) for b in bookings]
