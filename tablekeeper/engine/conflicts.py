"""
Conflict Checker.

A table is free for a candidate ``[start, start + duration)`` when no
blocking booking on it overlaps ``[start - buffer, start + duration + buffer)``.
That is the same as keeping every booking's ``[start, start + duration + buffer)``
window disjoint from every other on the same table.

Pacing caps count bookings that *start* at exactly the candidate minute.
"""

from typing import Iterable, Optional

from tablekeeper.engine.types import (
    BookingSnapshot,
    EffectivePeriod,
    ResolvedPolicy,
    SlotOccupancy,
    TableSnapshot,
)

PACING_OPEN = "open"
PACING_TABLES_FULL = "tables_cap_reached"
PACING_COVERS_FULL = "covers_cap_reached"


def overlaps(booking: BookingSnapshot, start: int, duration: int, buffer_minutes: int) -> bool:
    window_start = start - buffer_minutes
    window_end = start + duration + buffer_minutes
    return booking.start_minute < window_end and window_start < booking.end_minute


def busy_table_ids(
    bookings: Iterable[BookingSnapshot],
    start: int,
    duration: int,
    buffer_minutes: int = 0,
) -> frozenset:
    busy = set()
    for booking in bookings:
        if booking.is_blocking and overlaps(booking, start, duration, buffer_minutes):
            busy.update(booking.table_ids)
    return frozenset(busy)


def pacing_status(
    tables_starting: int,
    covers_starting: int,
    party_size: int,
    max_concurrent_tables: Optional[int],
    max_concurrent_covers: Optional[int],
) -> str:
    """Status of admitting one more booking of ``party_size`` at this exact start."""
    if max_concurrent_tables is not None and tables_starting + 1 > max_concurrent_tables:
        return PACING_TABLES_FULL
    if max_concurrent_covers is not None and covers_starting + party_size > max_concurrent_covers:
        return PACING_COVERS_FULL
    return PACING_OPEN


def effective_table_cap(restaurant_cap: Optional[int], period_cap: Optional[int]) -> Optional[int]:
    caps = [c for c in (restaurant_cap, period_cap) if c is not None]
    return min(caps) if caps else None


def check_slot(
    start: int,
    duration: int,
    party_size: int,
    tables: Iterable[TableSnapshot],
    bookings: Iterable[BookingSnapshot],
    buffer_minutes: int = 0,
    max_concurrent_tables: Optional[int] = None,
    max_concurrent_covers: Optional[int] = None,
    override_caps: bool = False,
) -> SlotOccupancy:
    """
    Free tables and pacing counts at ``start``.

    ``override_caps`` is the staff path: counts are still reported but the
    caps never close the slot.
    """
    bookings = [b for b in bookings if b.is_blocking]
    busy = busy_table_ids(bookings, start, duration, buffer_minutes)
    free = tuple(t for t in tables if t.is_active and t.id not in busy)

    starting = [b for b in bookings if b.start_minute == start]
    tables_starting = len(starting)
    covers_starting = sum(b.party_size for b in starting)

    status = PACING_OPEN
    if not override_caps:
        status = pacing_status(
            tables_starting, covers_starting, party_size, max_concurrent_tables, max_concurrent_covers
        )

    return SlotOccupancy(
        start_minute=start,
        duration_minutes=duration,
        free_tables=free,
        tables_starting=tables_starting,
        covers_starting=covers_starting,
        pacing_status=status,
        busy_table_ids=busy,
    )


def tables_still_free(
    table_ids: Iterable,
    bookings: Iterable[BookingSnapshot],
    start: int,
    duration: int,
    buffer_minutes: int = 0,
) -> bool:
    """Re-verification under the table locks, just before persisting."""
    busy = busy_table_ids(bookings, start, duration, buffer_minutes)
    return not any(table_id in busy for table_id in table_ids)


def check_period_slot(
    resolved: ResolvedPolicy,
    period: EffectivePeriod,
    start: int,
    tables: Iterable[TableSnapshot],
    bookings: Iterable[BookingSnapshot],
    override_caps: bool = False,
) -> SlotOccupancy:
    """``check_slot`` with the turn time, buffer and caps of ``period``."""
    policy = resolved.policy
    return check_slot(
        start,
        period.turn_time_minutes,
        resolved.party_size,
        tables,
        bookings,
        buffer_minutes=policy.buffer_minutes,
        max_concurrent_tables=effective_table_cap(policy.max_concurrent_tables, period.max_concurrent_bookings),
        max_concurrent_covers=policy.max_concurrent_covers,
        override_caps=override_caps,
    )
