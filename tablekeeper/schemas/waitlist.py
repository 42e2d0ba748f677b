from typing import Optional
from datetime import date, time, datetime
from pydantic import BaseModel, UUID4


class WaitlistReceipt(BaseModel):
    entry_id: UUID4
    restaurant_id: UUID4
    booking_date: date
    requested_time: time
    party_size: int
    position: int

    class Config:
        from_attributes = True


class WaitlistEntry(BaseModel):
    id: UUID4
    restaurant_id: UUID4
    booking_date: date
    requested_time: time
    party_size: int
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    status: str
    requested_at: datetime
    promoted_booking_id: Optional[UUID4] = None

    class Config:
        from_attributes = True
