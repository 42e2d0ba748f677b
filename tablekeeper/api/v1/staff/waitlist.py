from datetime import date
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from tablekeeper.api.deps import get_current_staff, get_waitlist_service
from tablekeeper.engine.waitlist import WaitlistService
from tablekeeper.schemas.waitlist import WaitlistEntry

restaurant_waitlist_router = APIRouter(prefix="/staff/restaurants", tags=["Waitlist"])
waitlist_router = APIRouter(prefix="/staff/waitlist", tags=["Waitlist"])


@restaurant_waitlist_router.get("/{restaurant_id}/waitlist", response_model=List[WaitlistEntry])
def list_waitlist(
    restaurant_id: UUID,
    on_date: date = Query(..., alias="date"),
    staff: dict = Depends(get_current_staff),
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Waiting entries for one date, oldest request first."""
    return service.list_entries(restaurant_id, on_date)


@waitlist_router.delete("/{entry_id}", response_model=WaitlistEntry)
def remove_waitlist_entry(
    entry_id: UUID,
    staff: dict = Depends(get_current_staff),
    service: WaitlistService = Depends(get_waitlist_service),
):
    return service.remove(entry_id)
