"""
Availability queries.

Composes resolver, slot generator, conflict checker and table selector into
the list of start times a guest (or staff member) can book for one date.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tablekeeper.core.exceptions import PersistenceError, PolicyConfigurationError, RestaurantClosed, ValidationError
from tablekeeper.engine import policy as policy_resolver
from tablekeeper.engine.conflicts import check_period_slot
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.engine.slots import SlotSequence
from tablekeeper.engine.tables import DEFAULT_MAX_COMBINATION_TABLES, try_select_tables
from tablekeeper.engine.types import BookingSnapshot, ResolvedPolicy, RestaurantPolicy, TableSnapshot
from tablekeeper.utils.timeslots import format_minutes, from_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSlot:
    time: str
    available: bool
    tables_available: int
    pacing_status: str
    waitlist_available: bool


# --- Booking window ---

def restaurant_zone(policy: RestaurantPolicy) -> ZoneInfo:
    try:
        return ZoneInfo(policy.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise PolicyConfigurationError(f"Unknown timezone {policy.timezone!r}") from e


def local_now(policy: RestaurantPolicy, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(restaurant_zone(policy))


def check_booking_date(policy: RestaurantPolicy, on_date: date, now: Optional[datetime] = None) -> None:
    """Reject dates in the past or beyond ``max_advance_days``."""
    today = local_now(policy, now).date()
    if on_date < today:
        raise ValidationError("Date is in the past", {"date": on_date.isoformat()})
    if on_date > today + timedelta(days=policy.max_advance_days):
        raise ValidationError(
            f"Bookings open at most {policy.max_advance_days} days ahead",
            {"date": on_date.isoformat(), "max_advance_days": policy.max_advance_days},
        )


def slot_is_bookable_at(
    policy: RestaurantPolicy,
    on_date: date,
    minute: int,
    now: Optional[datetime] = None,
    require_notice: bool = True,
) -> bool:
    """
    Whether ``minute`` on ``on_date`` is far enough ahead. Staff skip the
    minimum notice but still cannot book a start that already passed.
    """
    current = local_now(policy, now)
    starts_at = datetime.combine(on_date, from_minutes(minute), tzinfo=current.tzinfo)
    notice = timedelta(hours=policy.min_advance_hours) if require_notice else timedelta(0)
    return starts_at >= current + notice


# --- Slot scan ---

def scan_slots(
    resolved: ResolvedPolicy,
    tables: Iterable[TableSnapshot],
    bookings: Iterable[BookingSnapshot],
    override_caps: bool = False,
    max_tables: int = DEFAULT_MAX_COMBINATION_TABLES,
):
    """Yield ``(minute, occupancy, assignment)`` for every candidate start."""
    tables = tuple(tables)
    bookings = tuple(bookings)
    for minute, period in SlotSequence(resolved.periods):
        occupancy = check_period_slot(resolved, period, minute, tables, bookings, override_caps)
        assignment = None
        if occupancy.pacing_open:
            assignment = try_select_tables(occupancy.free_tables, resolved.party_size, max_tables)
        yield minute, occupancy, assignment


def find_alternatives(
    resolved: ResolvedPolicy,
    tables: Iterable[TableSnapshot],
    bookings: Iterable[BookingSnapshot],
    around_minute: int,
    on_date: date,
    now: Optional[datetime] = None,
    override_caps: bool = False,
    max_tables: int = DEFAULT_MAX_COMBINATION_TABLES,
    limit: int = 3,
    require_notice: bool = True,
) -> list[str]:
    """Closest bookable start times to ``around_minute``, earliest first on ties."""
    candidates = [
        minute
        for minute, _, assignment in scan_slots(resolved, tables, bookings, override_caps, max_tables)
        if assignment is not None
        and slot_is_bookable_at(resolved.policy, on_date, minute, now, require_notice)
    ]
    closest = sorted(candidates, key=lambda m: (abs(m - around_minute), m))[:limit]
    return [format_minutes(m) for m in sorted(closest)]


def get_availability(
    repository: BookingRepository,
    restaurant_id: UUID,
    on_date: date,
    party_size: int,
    now: Optional[datetime] = None,
    override_caps: bool = False,
    max_tables: int = DEFAULT_MAX_COMBINATION_TABLES,
    require_notice: bool = True,
) -> list[TimeSlot]:
    """
    Bookable start times for ``party_size`` on ``on_date``.

    A closed day or a failed storage read yields an empty list instead of an
    error. Bad input (party size, date outside the booking window) raises
    ``ValidationError``; an unknown restaurant raises ``BookingNotFound``.
    """
    try:
        policy = repository.load_policy(restaurant_id)
    except PersistenceError as e:
        logger.error("Availability for %s on %s degraded: %s", restaurant_id, on_date, e.message)
        return []

    policy_resolver.validate_party_size(policy, party_size)
    check_booking_date(policy, on_date, now)

    try:
        resolved = policy_resolver.resolve(policy, on_date, party_size)
    except RestaurantClosed:
        return []

    try:
        tables = repository.list_tables(restaurant_id)
        bookings = repository.list_bookings(restaurant_id, on_date)
    except PersistenceError as e:
        logger.error("Availability for %s on %s degraded: %s", restaurant_id, on_date, e.message)
        return []

    slots = []
    for minute, occupancy, assignment in scan_slots(resolved, tables, bookings, override_caps, max_tables):
        if not slot_is_bookable_at(policy, on_date, minute, now, require_notice):
            continue
        fitting = occupancy.fitting_tables(party_size)
        if fitting:
            tables_available = len(fitting)
        elif assignment is not None:
            tables_available = len(assignment.tables)
        else:
            tables_available = 0
        available = assignment is not None
        slots.append(TimeSlot(
            time=format_minutes(minute),
            available=available,
            tables_available=tables_available if available else 0,
            pacing_status=occupancy.pacing_status,
            waitlist_available=policy.enable_waitlist and not available,
        ))
    return slots
