from tablekeeper.db.session import Base
from tablekeeper.models.restaurant import Restaurant, ServicePeriod
from tablekeeper.models.rules import TimeSlotRule, TurnTimeRule
from tablekeeper.models.table import RestaurantTable
from tablekeeper.models.booking import Booking, BookingTable
from tablekeeper.models.waitlist import WaitlistEntry
from tablekeeper.models.booking_lock import BookingLock
