"""
Immutable snapshots the engine computes on.

The storage gateway converts ORM rows into these once per request so that
the resolver, slot generator, conflict checker and table selector stay pure
functions over plain data.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import Optional
from uuid import UUID

# Every status except "cancelled" keeps its tables occupied.
BLOCKING_STATUSES = frozenset({"pending", "confirmed", "completed", "no_show"})


@dataclass(frozen=True)
class OpeningPeriod:
    """One named service period of the restaurant's regular opening hours."""
    day_of_week: int
    name: str
    start_minute: int
    end_minute: int
    slot_duration: Optional[int] = None


@dataclass(frozen=True)
class TimeSlotRuleSpec:
    """
    Service-period override. ``day_of_week`` None means the rule applies to
    every day; otherwise it is scoped to that weekday.
    """
    id: UUID
    name: str
    day_of_week: Optional[int]
    start_minute: int
    end_minute: int
    slot_duration: int
    max_concurrent_bookings: Optional[int] = None
    turn_time_minutes: Optional[int] = None
    priority: int = 0

    @property
    def is_day_specific(self) -> bool:
        return self.day_of_week is not None

    @property
    def span(self) -> int:
        return self.end_minute - self.start_minute


@dataclass(frozen=True)
class TurnTimeRuleSpec:
    id: UUID
    min_party_size: int
    max_party_size: int
    turn_time_minutes: int
    priority: int = 0
    is_active: bool = True

    def matches(self, party_size: int) -> bool:
        return self.is_active and self.min_party_size <= party_size <= self.max_party_size

    @property
    def span(self) -> int:
        return self.max_party_size - self.min_party_size


@dataclass(frozen=True)
class RestaurantPolicy:
    restaurant_id: UUID
    timezone: str = "UTC"
    default_slot_duration: int = 30
    default_turn_time: int = 120
    buffer_minutes: int = 0
    min_advance_hours: int = 2
    max_advance_days: int = 270
    max_party_size: int = 20
    max_concurrent_tables: Optional[int] = None
    max_concurrent_covers: Optional[int] = None
    enable_waitlist: bool = True
    auto_confirm: bool = True
    opening_periods: tuple[OpeningPeriod, ...] = ()
    time_slot_rules: tuple[TimeSlotRuleSpec, ...] = ()
    turn_time_rules: tuple[TurnTimeRuleSpec, ...] = ()


@dataclass(frozen=True)
class EffectivePeriod:
    """A service period after rule precedence has been applied for one date."""
    name: str
    start_minute: int
    end_minute: int
    slot_duration: int
    turn_time_minutes: int
    max_concurrent_bookings: Optional[int] = None
    source: str = "opening_hours"  # or "rule"

    def contains_start(self, minute: int) -> bool:
        return self.start_minute <= minute and minute + self.turn_time_minutes <= self.end_minute


@dataclass(frozen=True)
class ResolvedPolicy:
    policy: RestaurantPolicy
    day_of_week: int
    party_size: int
    turn_time_minutes: int
    periods: tuple[EffectivePeriod, ...]

    def period_for(self, minute: int) -> Optional[EffectivePeriod]:
        for period in self.periods:
            if period.contains_start(minute):
                return period
        return None


@dataclass(frozen=True)
class TableSnapshot:
    id: UUID
    number: str
    min_capacity: int
    max_capacity: int
    is_combinable: bool = True
    priority: int = 0
    is_active: bool = True

    def fits(self, party_size: int) -> bool:
        return self.min_capacity <= party_size <= self.max_capacity


@dataclass(frozen=True)
class BookingSnapshot:
    id: UUID
    table_ids: frozenset
    start_minute: int
    duration_minutes: int
    party_size: int
    status: str

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES


@dataclass(frozen=True)
class TableAssignment:
    tables: tuple[TableSnapshot, ...]

    @property
    def is_combination(self) -> bool:
        return len(self.tables) > 1

    @property
    def total_capacity(self) -> int:
        return sum(t.max_capacity for t in self.tables)

    @property
    def table_ids(self) -> tuple[UUID, ...]:
        return tuple(t.id for t in self.tables)


@dataclass(frozen=True)
class SlotOccupancy:
    """Conflict Checker output for one candidate start time."""
    start_minute: int
    duration_minutes: int
    free_tables: tuple[TableSnapshot, ...]
    tables_starting: int
    covers_starting: int
    pacing_status: str = "open"
    busy_table_ids: frozenset = field(default_factory=frozenset)

    @property
    def pacing_open(self) -> bool:
        return self.pacing_status == "open"

    def fitting_tables(self, party_size: int) -> tuple[TableSnapshot, ...]:
        return tuple(t for t in self.free_tables if t.fits(party_size))


@dataclass(frozen=True)
class BookingRequest:
    """Input of ``CreateBooking``. ``override_caps`` is honoured for staff only."""
    restaurant_id: UUID
    booking_date: date
    start_time: time
    party_size: int
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    source: str = "guest"  # guest, staff, waitlist
    override_caps: bool = False
    join_waitlist: bool = False
    waitlist_entry_id: Optional[UUID] = None  # set when promoting from the waitlist


@dataclass(frozen=True)
class BookingChanges:
    """Staff edits to an existing booking. ``None`` keeps the current value."""
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    party_size: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    override_caps: bool = False
