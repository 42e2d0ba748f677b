
from tablekeeper.schemas.common import ErrorResponse
from tablekeeper.schemas.availability import TimeSlot, AvailabilityResponse
from tablekeeper.schemas.waitlist import WaitlistReceipt, WaitlistEntry
from tablekeeper.schemas.booking import (
    Booking, BookingCreate, StaffBookingCreate, BookingUpdate, BookingResult,
    BookingCancelRequest, BookingTableSummary,
)
from tablekeeper.schemas.rules import (
    TimeSlotRule, TimeSlotRuleCreate, DaySpecificTimeSlotRule, AllDaysTimeSlotRule,
    TurnTimeRule, TurnTimeRuleCreate,
)
