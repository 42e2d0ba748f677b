from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from tablekeeper.api.deps import get_repository
from tablekeeper.core.config import settings
from tablekeeper.engine.availability import get_availability
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.schemas.availability import AvailabilityResponse, TimeSlot

router = APIRouter(prefix="/restaurants", tags=["Availability"])


@router.get("/{restaurant_id}/availability", response_model=AvailabilityResponse)
def restaurant_availability(
    restaurant_id: UUID,
    on_date: date = Query(..., alias="date"),
    party_size: int = Query(...),
    repository: BookingRepository = Depends(get_repository),
):
    """Bookable start times for a party on one date. Closed days return no slots."""
    slots = get_availability(
        repository,
        restaurant_id,
        on_date,
        party_size,
        max_tables=settings.MAX_COMBINATION_TABLES,
    )
    return AvailabilityResponse(
        restaurant_id=restaurant_id,
        date=on_date,
        party_size=party_size,
        slots=[TimeSlot.model_validate(s) for s in slots],
    )
