"""Booking transaction orchestrator and the availability query it shares slots with."""

import threading
import uuid
from datetime import datetime, time, timedelta, timezone
from unittest.mock import Mock

from conftest import FRIDAY, NOW, add_table, booking_request, make_restaurant
from tablekeeper.core.exceptions import (
    BookingNotFound,
    InvalidStatusTransition,
    LockTimeout,
    NoCapacity,
    PersistenceError,
    RestaurantClosed,
    ValidationError,
)
from tablekeeper.engine import events as event_types
from tablekeeper.engine.availability import get_availability
from tablekeeper.engine.locks import BookingLockCoordinator
from tablekeeper.engine.orchestrator import BookingOrchestrator, BookingState
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.engine.types import BookingChanges
from tablekeeper.models import Booking, TurnTimeRule, WaitlistEntry


def _available_times(repository, restaurant, party_size=4, on_date=FRIDAY):
    slots = get_availability(repository, restaurant.id, on_date, party_size, now=NOW)
    return [s.time for s in slots if s.available]


class TestFridayScenario:
    """Open Fri 17:00-22:00, slot 30, turn 120, one 4-top."""

    def test_initial_availability(self, repository, restaurant):
        slots = get_availability(repository, restaurant.id, FRIDAY, 4, now=NOW)

        assert [s.time for s in slots] == ["17:00", "17:30", "18:00", "18:30", "19:00", "19:30", "20:00"]
        assert all(s.available and s.tables_available == 1 for s in slots)
        assert all(s.pacing_status == "open" and not s.waitlist_available for s in slots)

    def test_booking_18_00_without_buffer(self, repository, restaurant, orchestrator):
        result = orchestrator.create_booking(booking_request(restaurant), now=NOW)

        assert result.state is BookingState.confirmed
        # 18:00-20:00 occupied; only a start at 20:00 no longer overlaps it
        assert _available_times(repository, restaurant) == ["20:00"]

    def test_booking_18_00_with_buffer(self, db, repository, orchestrator):
        restaurant = make_restaurant(db, buffer_minutes=15)
        add_table(db, restaurant, 1, 4)

        assert orchestrator.create_booking(booking_request(restaurant), now=NOW).ok
        assert _available_times(repository, restaurant) == []

        slots = get_availability(repository, restaurant.id, FRIDAY, 4, now=NOW)
        assert all(s.waitlist_available for s in slots)

    def test_closed_day_has_no_slots(self, repository, restaurant):
        assert get_availability(repository, restaurant.id, FRIDAY + timedelta(days=1), 2, now=NOW) == []


class TestCreateBooking:
    def test_confirmed_booking(self, db, restaurant, orchestrator, events):
        result = orchestrator.create_booking(booking_request(restaurant, party_size=3), now=NOW)

        assert result.ok
        assert result.history == [
            BookingState.requested,
            BookingState.lock_acquired,
            BookingState.revalidated,
            BookingState.table_assigned,
            BookingState.persisted,
            BookingState.confirmed,
        ]
        booking = db.query(Booking).one()
        assert booking.status == "confirmed"
        assert booking.duration_minutes == 120
        assert len(booking.confirmation_code) == 8
        assert [e[0] for e in events.received] == [event_types.BOOKING_CREATED]
        assert events.received[0][1]["confirmation_code"] == booking.confirmation_code

    def test_pending_without_auto_confirm(self, db, orchestrator):
        restaurant = make_restaurant(db, auto_confirm=False)
        add_table(db, restaurant, 1, 4)

        result = orchestrator.create_booking(booking_request(restaurant), now=NOW)

        assert result.booking.status == "pending"

    def test_locks_released_after_booking(self, restaurant, orchestrator, locks):
        orchestrator.create_booking(booking_request(restaurant), now=NOW)

        key = locks.window_key(restaurant.id, FRIDAY, 18 * 60)
        assert locks.acquire(key, max_wait_seconds=0).key == key

    def test_combination_booked_as_a_set(self, db, orchestrator):
        restaurant = make_restaurant(db)
        for number in (1, 2, 3):
            add_table(db, restaurant, number, 2)

        result = orchestrator.create_booking(booking_request(restaurant, party_size=5), now=NOW)

        assert result.ok
        assert len(result.booking.tables) == 3

    def test_time_outside_service_hours(self, restaurant, orchestrator):
        result = orchestrator.create_booking(booking_request(restaurant, start=time(20, 30)), now=NOW)

        assert result.state is BookingState.validation_failed
        assert isinstance(result.error, ValidationError)
        assert result.error.details["turn_time_minutes"] == 120

    def test_closed_day(self, restaurant, orchestrator):
        result = orchestrator.create_booking(booking_request(restaurant, on_date=FRIDAY + timedelta(days=1)), now=NOW)

        assert result.state is BookingState.validation_failed
        assert isinstance(result.error, RestaurantClosed)

    def test_past_date(self, restaurant, orchestrator):
        result = orchestrator.create_booking(booking_request(restaurant, on_date=FRIDAY - timedelta(days=7)), now=NOW)

        assert result.state is BookingState.validation_failed
        assert result.error.message == "Date is in the past"

    def test_min_advance_notice(self, restaurant, orchestrator):
        late = datetime(2030, 1, 4, 16, 30, tzinfo=timezone.utc)

        guest = orchestrator.create_booking(booking_request(restaurant), now=late)
        staff = orchestrator.create_booking(booking_request(restaurant, source="staff"), now=late)

        assert guest.state is BookingState.validation_failed
        assert staff.state is BookingState.confirmed

    def test_too_far_ahead(self, restaurant, orchestrator):
        far = FRIDAY + timedelta(days=7 * 52)

        result = orchestrator.create_booking(booking_request(restaurant, on_date=far), now=NOW)

        assert result.state is BookingState.validation_failed
        assert result.error.details["max_advance_days"] == 270

    def test_guest_cannot_override_caps(self, restaurant, orchestrator):
        result = orchestrator.create_booking(booking_request(restaurant, override_caps=True), now=NOW)

        assert result.state is BookingState.validation_failed

    def test_cancelled_before_commit(self, db, restaurant, orchestrator):
        cancel = threading.Event()
        cancel.set()

        result = orchestrator.create_booking(booking_request(restaurant), cancel_event=cancel, now=NOW)

        assert result.state is BookingState.cancelled
        assert db.query(Booking).count() == 0


class TestNoCapacity:
    def test_reason_and_alternatives(self, restaurant, orchestrator):
        orchestrator.create_booking(booking_request(restaurant), now=NOW)

        result = orchestrator.create_booking(booking_request(restaurant, start=time(18, 30)), now=NOW)

        assert result.state is BookingState.no_capacity
        assert isinstance(result.error, NoCapacity)
        assert result.error.details["reason"] == "tables"
        assert result.error.details["alternatives"] == ["20:00"]
        assert result.error.details["waitlist_available"] is True

    def test_no_combination(self, db, orchestrator):
        restaurant = make_restaurant(db)
        for number in (1, 2, 3):
            add_table(db, restaurant, number, 2)

        result = orchestrator.create_booking(booking_request(restaurant, party_size=7), now=NOW)

        assert result.error.details["reason"] == "combination"

    def test_pacing_tables_cap(self, db, orchestrator):
        restaurant = make_restaurant(db, max_concurrent_tables=1)
        add_table(db, restaurant, 1, 4)
        add_table(db, restaurant, 2, 4)
        orchestrator.create_booking(booking_request(restaurant), now=NOW)

        guest = orchestrator.create_booking(booking_request(restaurant), now=NOW)
        staff = orchestrator.create_booking(
            booking_request(restaurant, source="staff", override_caps=True), now=NOW,
        )

        assert guest.error.details["reason"] == "pacing_tables"
        assert staff.ok

    def test_pacing_covers_cap(self, db, orchestrator):
        restaurant = make_restaurant(db, max_concurrent_covers=6)
        add_table(db, restaurant, 1, 4)
        add_table(db, restaurant, 2, 4)
        orchestrator.create_booking(booking_request(restaurant), now=NOW)

        result = orchestrator.create_booking(booking_request(restaurant, party_size=3), now=NOW)

        assert result.error.details["reason"] == "pacing_covers"

    def test_waitlist_receipt(self, db, restaurant, orchestrator, events):
        orchestrator.create_booking(booking_request(restaurant), now=NOW)

        result = orchestrator.create_booking(
            booking_request(restaurant, customer_name="Grace Hopper", join_waitlist=True), now=NOW,
        )

        assert result.state is BookingState.waitlisted
        assert result.waitlist_receipt.position == 1
        assert db.query(WaitlistEntry).one().customer_name == "Grace Hopper"
        assert events.received[-1][0] == event_types.WAITLIST_ADDED

    def test_waitlist_disabled(self, db, orchestrator):
        restaurant = make_restaurant(db, enable_waitlist=False)
        add_table(db, restaurant, 1, 4)
        orchestrator.create_booking(booking_request(restaurant), now=NOW)

        result = orchestrator.create_booking(booking_request(restaurant, join_waitlist=True), now=NOW)

        assert result.state is BookingState.no_capacity
        assert result.error.details["waitlist_available"] is False
        assert db.query(WaitlistEntry).count() == 0


class TestFailures:
    def test_lock_timeout(self, repository, restaurant, events):
        store = Mock()
        store.try_acquire.return_value = False
        locks = BookingLockCoordinator(store, max_wait_seconds=0.05, backoff_base_seconds=0.01)
        orchestrator = BookingOrchestrator(repository, locks, events)

        result = orchestrator.create_booking(booking_request(restaurant), now=NOW)

        assert result.state is BookingState.lock_timeout
        assert isinstance(result.error, LockTimeout)
        assert result.error.retryable

    def test_persistence_retried_with_fresh_locks(self, db, repository, restaurant, locks, events):
        real_create = repository.create_booking
        calls = []

        def flaky_create(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise PersistenceError("disk full")
            return real_create(**kwargs)

        repository.create_booking = flaky_create
        orchestrator = BookingOrchestrator(repository, locks, events, persistence_retries=2)

        result = orchestrator.create_booking(booking_request(restaurant), now=NOW)

        assert result.ok
        assert len(calls) == 2
        assert result.history.count(BookingState.lock_acquired) == 2
        assert db.query(Booking).count() == 1

    def test_persistence_failure_surfaces(self, repository, restaurant, locks, events):
        def broken_create(**kwargs):
            raise PersistenceError("disk full")

        repository.create_booking = broken_create
        orchestrator = BookingOrchestrator(repository, locks, events, persistence_retries=1)

        result = orchestrator.create_booking(booking_request(restaurant), now=NOW)

        assert result.state is BookingState.persistence_failed
        key = locks.window_key(restaurant.id, FRIDAY, 18 * 60)
        assert locks.acquire(key, max_wait_seconds=0).key == key


class TestRuleChanges:
    def test_new_turn_time_rule_does_not_touch_existing_bookings(self, db, repository, orchestrator):
        restaurant = make_restaurant(db)
        add_table(db, restaurant, 1, 8)
        add_table(db, restaurant, 2, 8)
        for low, high, minutes in ((1, 4, 90), (5, 8, 150)):
            db.add(TurnTimeRule(restaurant_id=restaurant.id, min_party_size=low, max_party_size=high, turn_time_minutes=minutes))
        db.commit()

        first = orchestrator.create_booking(booking_request(restaurant, start=time(17, 0), party_size=6), now=NOW)
        assert first.booking.duration_minutes == 150

        repository.add_turn_time_rule(TurnTimeRule(
            restaurant_id=restaurant.id, min_party_size=5, max_party_size=8, turn_time_minutes=120, priority=1,
        ))
        second = orchestrator.create_booking(booking_request(restaurant, start=time(17, 0), party_size=6), now=NOW)

        assert second.booking.duration_minutes == 120
        db.refresh(first.booking)
        assert first.booking.duration_minutes == 150


class TestTableRace:
    """A booking at another start time claims the chosen table before its lock is taken."""

    def _race_on_first_table_lock(self, locks, session_factory, restaurant, table):
        real_hold_tables = locks.hold_tables
        raced = []

        def racing_hold_tables(*args, **kwargs):
            if not raced:
                raced.append(True)
                rival = session_factory()
                try:
                    BookingRepository(rival).create_booking(
                        restaurant_id=restaurant.id,
                        table_ids=[table.id],
                        party_size=2,
                        on_date=FRIDAY,
                        start_time=time(17, 30),
                        duration_minutes=120,
                        status="confirmed",
                        source="guest",
                        customer_name="Rival",
                    )
                finally:
                    rival.close()
            return real_hold_tables(*args, **kwargs)

        locks.hold_tables = racing_hold_tables

    def test_loser_gets_the_other_free_table(self, db, session_factory, orchestrator, locks):
        restaurant = make_restaurant(db)
        first = add_table(db, restaurant, 1, 2)
        second = add_table(db, restaurant, 2, 2, priority=1)
        self._race_on_first_table_lock(locks, session_factory, restaurant, first)

        result = orchestrator.create_booking(booking_request(restaurant, party_size=2), now=NOW)

        assert result.ok
        assert [bt.table_id for bt in result.booking.tables] == [second.id]
        assert result.history.count(BookingState.table_assigned) == 2
        assert db.query(Booking).count() == 2

    def test_no_capacity_when_nothing_else_fits(self, db, session_factory, orchestrator, locks):
        restaurant = make_restaurant(db)
        only = add_table(db, restaurant, 1, 2)
        self._race_on_first_table_lock(locks, session_factory, restaurant, only)

        result = orchestrator.create_booking(booking_request(restaurant, party_size=2), now=NOW)

        assert result.state is BookingState.no_capacity
        assert result.error.details["reason"] == "tables"
        assert db.query(Booking).count() == 1


class TestModifyBooking:
    def test_move_to_later_time_frees_the_old_slot(self, repository, restaurant, orchestrator, events):
        booking = orchestrator.create_booking(booking_request(restaurant), now=NOW).booking

        result = orchestrator.modify_booking(booking.id, BookingChanges(start_time=time(20, 0)), now=NOW)

        assert result.state is BookingState.modified
        assert result.booking.id == booking.id
        assert result.booking.start_time == time(20, 0)
        assert _available_times(repository, restaurant) == ["17:00", "17:30", "18:00"]
        assert events.received[-1][0] == event_types.BOOKING_UPDATED

    def test_overlapping_its_own_slot_is_allowed(self, restaurant, orchestrator):
        booking = orchestrator.create_booking(booking_request(restaurant), now=NOW).booking

        result = orchestrator.modify_booking(booking.id, BookingChanges(start_time=time(18, 30)), now=NOW)

        assert result.ok
        assert result.booking.start_time == time(18, 30)

    def test_conflict_leaves_booking_unchanged(self, db, restaurant, orchestrator):
        orchestrator.create_booking(booking_request(restaurant), now=NOW)
        later = orchestrator.create_booking(booking_request(restaurant, start=time(20, 0)), now=NOW).booking

        result = orchestrator.modify_booking(later.id, BookingChanges(start_time=time(19, 0)), now=NOW)

        assert result.state is BookingState.no_capacity
        assert result.error.details["alternatives"] == ["20:00"]
        db.refresh(later)
        assert later.start_time == time(20, 0)
        assert later.status == "confirmed"

    def test_party_size_change_swaps_table_and_duration(self, db, orchestrator):
        restaurant = make_restaurant(db)
        small = add_table(db, restaurant, 1, 2)
        large = add_table(db, restaurant, 2, 6)
        db.add(TurnTimeRule(restaurant_id=restaurant.id, min_party_size=5, max_party_size=8, turn_time_minutes=150))
        db.commit()
        booking = orchestrator.create_booking(booking_request(restaurant, party_size=2), now=NOW).booking
        assert [bt.table_id for bt in booking.tables] == [small.id]

        result = orchestrator.modify_booking(booking.id, BookingChanges(party_size=6), now=NOW)

        assert result.ok
        assert [bt.table_id for bt in result.booking.tables] == [large.id]
        assert result.booking.party_size == 6
        assert result.booking.duration_minutes == 150

    def test_cancelled_booking_cannot_be_modified(self, repository, restaurant, orchestrator):
        booking = orchestrator.create_booking(booking_request(restaurant), now=NOW).booking
        repository.set_status(booking, "cancelled")

        result = orchestrator.modify_booking(booking.id, BookingChanges(start_time=time(20, 0)), now=NOW)

        assert result.state is BookingState.validation_failed
        assert isinstance(result.error, InvalidStatusTransition)

    def test_unknown_booking(self, orchestrator):
        result = orchestrator.modify_booking(uuid.uuid4(), BookingChanges(party_size=2), now=NOW)

        assert isinstance(result.error, BookingNotFound)
