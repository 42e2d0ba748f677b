from typing import List, Optional
from pydantic import BaseModel, Field, UUID4, field_validator
from datetime import date, time, datetime

from tablekeeper.schemas.waitlist import WaitlistReceipt


def _normalise_hhmm(v):
    """Accept "19:30" as well as "19:30:00"; drop seconds and fractions."""
    if isinstance(v, str) and len(v) >= 5 and v[2] == ":":
        return v[:5]
    return v


# Booking: Create (POST /bookings)
class BookingCreate(BaseModel):
    restaurant_id: UUID4
    booking_date: date
    start_time: time
    party_size: int
    customer_name: str = Field(min_length=1, max_length=200)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    join_waitlist: bool = False

    @field_validator("start_time", mode="before")
    @classmethod
    def normalise_time(cls, v):
        return _normalise_hhmm(v)


# Booking: Staff create (POST /staff/bookings)
class StaffBookingCreate(BookingCreate):
    override_caps: bool = False


# Booking: Staff update (PUT /staff/bookings/{id}); omitted fields keep their value
class BookingUpdate(BaseModel):
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    party_size: Optional[int] = None
    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    override_caps: bool = False

    @field_validator("start_time", mode="before")
    @classmethod
    def normalise_time(cls, v):
        return _normalise_hhmm(v)


class BookingTableSummary(BaseModel):
    table_id: UUID4
    number: Optional[str] = None


# Booking: Full response
class Booking(BaseModel):
    id: UUID4
    restaurant_id: UUID4
    confirmation_code: str
    party_size: int
    booking_date: date
    start_time: time
    duration_minutes: int
    status: str
    source: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    tables: List[BookingTableSummary] = []

    class Config:
        from_attributes = True


# Result of POST /bookings: a booking or a waitlist receipt
class BookingResult(BaseModel):
    state: str
    booking: Optional[Booking] = None
    waitlist_receipt: Optional[WaitlistReceipt] = None


# Booking: Guest cancel (POST /bookings/{id}/cancel without a staff token)
class BookingCancelRequest(BaseModel):
    confirmation_code: Optional[str] = None
