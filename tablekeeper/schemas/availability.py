from typing import List
from datetime import date
from pydantic import BaseModel, UUID4


class TimeSlot(BaseModel):
    time: str                    # "HH:MM", restaurant local time
    available: bool
    tables_available: int
    pacing_status: str           # "open" | "tables_cap_reached" | "covers_cap_reached"
    waitlist_available: bool

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    restaurant_id: UUID4
    date: date
    party_size: int
    slots: List[TimeSlot]
