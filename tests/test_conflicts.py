"""Conflict checker: buffer windows, blocking statuses and pacing caps."""

import uuid

import pytest

from tablekeeper.engine.conflicts import (
    PACING_COVERS_FULL,
    PACING_OPEN,
    PACING_TABLES_FULL,
    busy_table_ids,
    check_slot,
    effective_table_cap,
    tables_still_free,
)
from tablekeeper.engine.types import BookingSnapshot, TableSnapshot

T1 = TableSnapshot(id=uuid.uuid4(), number="1", min_capacity=1, max_capacity=4)
T2 = TableSnapshot(id=uuid.uuid4(), number="2", min_capacity=1, max_capacity=2)
TABLES = (T1, T2)


def _booking(table, start_hour, duration=120, status="confirmed", party_size=2, start_minute=0) -> BookingSnapshot:
    return BookingSnapshot(
        id=uuid.uuid4(),
        table_ids=frozenset({table.id}),
        start_minute=start_hour * 60 + start_minute,
        duration_minutes=duration,
        party_size=party_size,
        status=status,
    )


class TestOverlap:
    def test_back_to_back_bookings_do_not_conflict(self):
        bookings = [_booking(T1, 18)]

        assert T1.id not in busy_table_ids(bookings, 20 * 60, 120)
        assert T1.id in busy_table_ids(bookings, 19 * 60 + 59, 120)

    def test_buffer_extends_both_sides(self):
        bookings = [_booking(T1, 18)]

        assert T1.id in busy_table_ids(bookings, 20 * 60, 120, buffer_minutes=15)
        assert T1.id not in busy_table_ids(bookings, 20 * 60 + 15, 120, buffer_minutes=15)
        # New booking ending 15 minutes before the existing one starts
        assert T1.id not in busy_table_ids(bookings, 15 * 60 + 45, 120, buffer_minutes=15)
        assert T1.id in busy_table_ids(bookings, 15 * 60 + 46, 120, buffer_minutes=15)

    def test_cancelled_booking_frees_table(self):
        assert busy_table_ids([_booking(T1, 18, status="cancelled")], 18 * 60, 120) == frozenset()

    @pytest.mark.parametrize("status", ["pending", "confirmed", "completed", "no_show"])
    def test_other_statuses_block(self, status):
        assert T1.id in busy_table_ids([_booking(T1, 18, status=status)], 18 * 60, 120)

    def test_combination_blocks_every_member(self):
        combined = BookingSnapshot(
            id=uuid.uuid4(),
            table_ids=frozenset({T1.id, T2.id}),
            start_minute=18 * 60,
            duration_minutes=120,
            party_size=6,
            status="confirmed",
        )

        assert busy_table_ids([combined], 19 * 60, 60) == {T1.id, T2.id}

    def test_tables_still_free(self):
        bookings = [_booking(T1, 18)]

        assert not tables_still_free([T1.id, T2.id], bookings, 19 * 60, 120)
        assert tables_still_free([T2.id], bookings, 19 * 60, 120)


class TestCheckSlot:
    def test_free_and_fitting_tables(self):
        occupancy = check_slot(18 * 60, 120, 3, TABLES, [_booking(T2, 18)])

        assert occupancy.free_tables == (T1,)
        assert occupancy.fitting_tables(3) == (T1,)
        assert occupancy.busy_table_ids == {T2.id}

    def test_inactive_tables_never_free(self):
        inactive = TableSnapshot(id=uuid.uuid4(), number="9", min_capacity=1, max_capacity=4, is_active=False)

        occupancy = check_slot(18 * 60, 120, 2, (inactive,), [])

        assert occupancy.free_tables == ()

    def test_pacing_counts_only_same_start(self):
        bookings = [_booking(T1, 18, party_size=4), _booking(T2, 18, start_minute=30, party_size=2)]

        occupancy = check_slot(18 * 60, 120, 2, TABLES, bookings)

        assert occupancy.tables_starting == 1
        assert occupancy.covers_starting == 4

    def test_table_cap_reached(self):
        occupancy = check_slot(18 * 60, 120, 2, TABLES, [_booking(T1, 18)], max_concurrent_tables=1)

        assert occupancy.pacing_status == PACING_TABLES_FULL
        assert not occupancy.pacing_open

    def test_covers_cap_reached(self):
        occupancy = check_slot(
            18 * 60, 120, 3, TABLES, [_booking(T1, 18, party_size=4)], max_concurrent_covers=6,
        )

        assert occupancy.pacing_status == PACING_COVERS_FULL

    def test_covers_cap_allows_exact_fill(self):
        occupancy = check_slot(
            18 * 60, 120, 2, TABLES, [_booking(T1, 18, party_size=4)], max_concurrent_covers=6,
        )

        assert occupancy.pacing_status == PACING_OPEN

    def test_staff_override_ignores_caps(self):
        occupancy = check_slot(
            18 * 60, 120, 2, TABLES, [_booking(T1, 18)], max_concurrent_tables=1, override_caps=True,
        )

        assert occupancy.pacing_open
        assert occupancy.tables_starting == 1

    def test_effective_table_cap(self):
        assert effective_table_cap(None, None) is None
        assert effective_table_cap(5, None) == 5
        assert effective_table_cap(5, 3) == 3
