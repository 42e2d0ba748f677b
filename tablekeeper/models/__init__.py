
from tablekeeper.models.restaurant import Restaurant, ServicePeriod
from tablekeeper.models.rules import TimeSlotRule, TurnTimeRule
from tablekeeper.models.table import RestaurantTable
from tablekeeper.models.booking import Booking, BookingTable, BookingStatus
from tablekeeper.models.waitlist import WaitlistEntry, WaitlistStatus
from tablekeeper.models.booking_lock import BookingLock
