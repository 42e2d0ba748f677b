"""
Booking Transaction Orchestrator.

    Requested -> LockAcquired -> Revalidated -> TableAssigned -> Persisted
              -> Confirmed | Waitlisted | Modified

Terminal failures: LockTimeout, NoCapacity, ValidationFailed, Cancelled,
PersistenceFailed. Every lock taken here is released on every exit path;
a booking row is written only while both the window lock and its table
locks are held, after the tables were re-verified free.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Callable, Optional
from uuid import UUID

from tablekeeper.core.exceptions import (
    AttemptCancelled,
    BookingError,
    BookingNotFound,
    InvalidStatusTransition,
    LockTimeout,
    NoCapacity,
    PersistenceError,
    RestaurantClosed,
    TablesUnavailable,
    ValidationError,
)
from tablekeeper.engine import events
from tablekeeper.engine import policy as policy_resolver
from tablekeeper.engine.availability import check_booking_date, find_alternatives, slot_is_bookable_at
from tablekeeper.engine.conflicts import PACING_TABLES_FULL, check_period_slot, tables_still_free
from tablekeeper.engine.locks import BookingLockCoordinator
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.engine.tables import DEFAULT_MAX_COMBINATION_TABLES, select_tables
from tablekeeper.engine.types import BookingChanges, BookingRequest, EffectivePeriod, ResolvedPolicy, TableAssignment
from tablekeeper.engine.waitlist import WaitlistReceipt, append_to_waitlist
from tablekeeper.models.booking import Booking, BookingStatus
from tablekeeper.utils.timeslots import format_minutes, to_minutes

logger = logging.getLogger(__name__)

TABLE_RESELECT_ATTEMPTS = 3
MODIFIABLE_STATUSES = (BookingStatus.pending.value, BookingStatus.confirmed.value)


class BookingState(str, enum.Enum):
    requested = "requested"
    lock_acquired = "lock_acquired"
    revalidated = "revalidated"
    table_assigned = "table_assigned"
    persisted = "persisted"
    confirmed = "confirmed"
    waitlisted = "waitlisted"
    modified = "modified"
    # failures
    lock_timeout = "lock_timeout"
    no_capacity = "no_capacity"
    validation_failed = "validation_failed"
    cancelled = "cancelled"
    persistence_failed = "persistence_failed"


SUCCESS_STATES = (BookingState.confirmed, BookingState.waitlisted, BookingState.modified)


@dataclass
class BookingResult:
    state: BookingState = BookingState.requested
    booking: Optional[Booking] = None
    waitlist_receipt: Optional[WaitlistReceipt] = None
    error: Optional[BookingError] = None
    history: list[BookingState] = field(default_factory=lambda: [BookingState.requested])

    @property
    def ok(self) -> bool:
        return self.state in SUCCESS_STATES

    def advance(self, state: BookingState) -> None:
        self.state = state
        self.history.append(state)

    def fail(self, state: BookingState, error: BookingError) -> "BookingResult":
        self.advance(state)
        self.error = error
        return self


def _failure_state(error: BookingError) -> BookingState:
    if isinstance(error, LockTimeout):
        return BookingState.lock_timeout
    if isinstance(error, NoCapacity):
        return BookingState.no_capacity
    if isinstance(error, AttemptCancelled):
        return BookingState.cancelled
    if isinstance(error, PersistenceError):
        return BookingState.persistence_failed
    return BookingState.validation_failed


class BookingOrchestrator:
    def __init__(
        self,
        repository: BookingRepository,
        locks: BookingLockCoordinator,
        publisher: events.EventPublisher,
        max_combination_tables: int = DEFAULT_MAX_COMBINATION_TABLES,
        persistence_retries: int = 2,
    ) -> None:
        self.repository = repository
        self.locks = locks
        self.publisher = publisher
        self.max_combination_tables = max_combination_tables
        self.persistence_retries = persistence_retries

    def create_booking(
        self,
        request: BookingRequest,
        cancel_event: Optional[threading.Event] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        The only mutating entry point of the engine.

        Never raises a ``BookingError``: the outcome, including failures, is
        described by the returned ``BookingResult``.
        """
        result = BookingResult()
        try:
            resolved, period = self._validate(request, now)
            self._book_with_retries(
                request, resolved, period, result, cancel_event,
                persist=partial(self._insert, request),
            )
        except NoCapacity as e:
            self._handle_no_capacity(request, e, result, now)
        except BookingError as e:
            result.fail(_failure_state(e), e)

        if result.state is BookingState.confirmed:
            logger.info(
                "Booking %s confirmed: party of %d on %s at %s",
                result.booking.confirmation_code, request.party_size, request.booking_date,
                request.start_time.strftime("%H:%M"),
            )
            self.publisher.publish(
                events.BOOKING_CREATED,
                request.restaurant_id,
                events.booking_event_payload(result.booking),
            )
        elif not result.ok:
            logger.info(
                "Booking request for %s %s failed in state %s: %s",
                request.booking_date, request.start_time.strftime("%H:%M"), result.state.value, result.error.message,
            )
        return result

    def modify_booking(
        self,
        booking_id: UUID,
        changes: BookingChanges,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BookingResult:
        """
        Staff edit of a live booking: re-runs validation and table selection
        for the new date, time or party size under the same locks as a new
        booking. The duration is frozen again from the rules in force now.

        On failure the booking is left exactly as it was.
        """
        result = BookingResult()
        request = None
        try:
            booking = self.repository.get_booking(booking_id)
            if booking.status not in MODIFIABLE_STATUSES:
                raise InvalidStatusTransition(
                    f"Cannot modify a {booking.status} booking",
                    {"booking_id": str(booking_id), "status": booking.status},
                )
            request = _request_for_change(booking, changes)
            resolved, period = self._validate(request, now)

            def reschedule(assignment, resolved, period):
                return self.repository.reschedule_booking(
                    booking,
                    table_ids=assignment.table_ids,
                    party_size=request.party_size,
                    on_date=request.booking_date,
                    start_time=request.start_time,
                    duration_minutes=period.turn_time_minutes,
                    customer_name=request.customer_name,
                    customer_email=request.customer_email,
                    customer_phone=request.customer_phone,
                    notes=request.notes,
                )

            self._book_with_retries(
                request, resolved, period, result, cancel_event,
                persist=reschedule,
                exclude_booking_id=booking_id,
                final_state=BookingState.modified,
            )
        except NoCapacity as e:
            self._handle_no_capacity(request, e, result, now, exclude_booking_id=booking_id)
        except BookingError as e:
            result.fail(_failure_state(e), e)

        if result.state is BookingState.modified:
            logger.info(
                "Booking %s moved to %s at %s for %d",
                result.booking.confirmation_code, request.booking_date,
                request.start_time.strftime("%H:%M"), request.party_size,
            )
            self.publisher.publish(
                events.BOOKING_UPDATED,
                result.booking.restaurant_id,
                events.booking_event_payload(result.booking),
            )
        else:
            logger.info("Modification of booking %s failed in state %s: %s", booking_id, result.state.value, result.error.message)
        return result

    def _insert(
        self,
        request: BookingRequest,
        assignment: TableAssignment,
        resolved: ResolvedPolicy,
        period: EffectivePeriod,
    ) -> Booking:
        return self.repository.create_booking(
            restaurant_id=request.restaurant_id,
            table_ids=assignment.table_ids,
            party_size=request.party_size,
            on_date=request.booking_date,
            start_time=request.start_time,
            duration_minutes=period.turn_time_minutes,
            status=BookingStatus.confirmed.value if resolved.policy.auto_confirm else BookingStatus.pending.value,
            source=request.source,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            notes=request.notes,
            waitlist_entry_id=request.waitlist_entry_id,
        )

    # --- Step 1: validation ---

    def _validate(self, request: BookingRequest, now: Optional[datetime]) -> tuple[ResolvedPolicy, EffectivePeriod]:
        if request.override_caps and request.source != "staff":
            raise ValidationError("Only staff may override pacing caps")
        if not request.customer_name or not request.customer_name.strip():
            raise ValidationError("Customer name is required")

        policy = self.repository.load_policy(request.restaurant_id)
        policy_resolver.validate_party_size(policy, request.party_size)
        check_booking_date(policy, request.booking_date, now)
        resolved = policy_resolver.resolve(policy, request.booking_date, request.party_size)

        minute = to_minutes(request.start_time)
        period = resolved.period_for(minute)
        if period is None:
            raise ValidationError(
                "Requested time is outside service hours",
                {
                    "time": format_minutes(minute),
                    "turn_time_minutes": resolved.turn_time_minutes,
                    "periods": [
                        {"name": p.name, "start": format_minutes(p.start_minute), "end": format_minutes(p.end_minute)}
                        for p in resolved.periods
                    ],
                },
            )
        if not slot_is_bookable_at(policy, request.booking_date, minute, now, require_notice=request.source != "staff"):
            raise ValidationError(
                f"Bookings require at least {policy.min_advance_hours} hours notice",
                {"min_advance_hours": policy.min_advance_hours},
            )
        return resolved, period

    # --- Steps 2-5: locked section ---

    def _book_with_retries(
        self,
        request: BookingRequest,
        resolved: ResolvedPolicy,
        period: EffectivePeriod,
        result: BookingResult,
        cancel_event: Optional[threading.Event],
        persist: Callable[[TableAssignment, ResolvedPolicy, EffectivePeriod], Booking],
        exclude_booking_id: Optional[UUID] = None,
        final_state: BookingState = BookingState.confirmed,
    ) -> None:
        attempts = self.persistence_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                result.booking = self._attempt(
                    request, resolved, period, result, cancel_event, persist, exclude_booking_id
                )
                result.advance(final_state)
                return
            except PersistenceError:
                if attempt == attempts:
                    logger.exception("Booking persistence failed after %d attempts", attempts)
                    raise
                logger.warning("Booking persistence failed (attempt %d/%d), retrying with fresh locks", attempt, attempts)

    def _check_cancelled(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise AttemptCancelled("Booking attempt was cancelled before commit")

    def _attempt(
        self,
        request: BookingRequest,
        resolved: ResolvedPolicy,
        period: EffectivePeriod,
        result: BookingResult,
        cancel_event: Optional[threading.Event],
        persist: Callable[[TableAssignment, ResolvedPolicy, EffectivePeriod], Booking],
        exclude_booking_id: Optional[UUID] = None,
    ) -> Booking:
        rid = request.restaurant_id
        on_date = request.booking_date
        minute = to_minutes(request.start_time)
        duration = period.turn_time_minutes
        buffer_minutes = resolved.policy.buffer_minutes

        def current_bookings():
            return [
                b for b in self.repository.list_bookings(rid, on_date)
                if b.id != exclude_booking_id
            ]

        self._check_cancelled(cancel_event)
        with self.locks.hold_window(rid, on_date, minute) as window:
            result.advance(BookingState.lock_acquired)
            tables = self.repository.list_tables(rid)
            # Tables claimed by bookings at other start times between selection and table lock
            taken: set[UUID] = set()

            for _ in range(TABLE_RESELECT_ATTEMPTS):
                occupancy = check_period_slot(
                    resolved, period, minute, tables, current_bookings(), request.override_caps
                )
                result.advance(BookingState.revalidated)

                if not occupancy.pacing_open:
                    reason = "pacing_tables" if occupancy.pacing_status == PACING_TABLES_FULL else "pacing_covers"
                    raise NoCapacity(
                        "Too many bookings already start at this time",
                        {
                            "reason": reason,
                            "tables_starting": occupancy.tables_starting,
                            "covers_starting": occupancy.covers_starting,
                        },
                    )

                free = [t for t in occupancy.free_tables if t.id not in taken]
                assignment = select_tables(free, request.party_size, self.max_combination_tables)
                result.advance(BookingState.table_assigned)
                logger.debug(
                    "Assigned table(s) %s to party of %d at %s",
                    ",".join(t.number for t in assignment.tables), request.party_size, format_minutes(minute),
                )

                with self.locks.hold_tables(rid, on_date, assignment.table_ids) as table_handles:
                    # Bookings at other start times only contend on the table locks
                    current = current_bookings()
                    busy = [
                        table_id for table_id in assignment.table_ids
                        if not tables_still_free((table_id,), current, minute, duration, buffer_minutes)
                    ]
                    if not busy:
                        self._check_cancelled(cancel_event)
                        for handle in (window, *table_handles):
                            self.locks.ensure_held(handle)
                        booking = persist(assignment, resolved, period)
                        result.advance(BookingState.persisted)
                        return booking

                taken.update(busy)
                logger.info(
                    "Table(s) taken while locking for %s %s, selecting again",
                    on_date, format_minutes(minute),
                )

        raise TablesUnavailable(
            "The selected table was just taken",
            {"reason": "tables", "party_size": request.party_size},
        )

    # --- Step 6: no fit ---

    def _handle_no_capacity(
        self,
        request: BookingRequest,
        error: NoCapacity,
        result: BookingResult,
        now: Optional[datetime],
        exclude_booking_id: Optional[UUID] = None,
    ) -> None:
        try:
            policy = self.repository.load_policy(request.restaurant_id)
            resolved = policy_resolver.resolve(policy, request.booking_date, request.party_size)
            bookings = [
                b for b in self.repository.list_bookings(request.restaurant_id, request.booking_date)
                if b.id != exclude_booking_id
            ]
            alternatives = find_alternatives(
                resolved,
                self.repository.list_tables(request.restaurant_id),
                bookings,
                to_minutes(request.start_time),
                request.booking_date,
                now=now,
                override_caps=request.override_caps,
                max_tables=self.max_combination_tables,
                require_notice=request.source != "staff",
            )
        except (PersistenceError, RestaurantClosed, BookingNotFound) as e:
            logger.warning("Could not compute alternatives: %s", e.message)
            policy = None
            alternatives = []

        waitlist_open = bool(policy and policy.enable_waitlist)
        if request.join_waitlist and waitlist_open:
            try:
                result.waitlist_receipt = append_to_waitlist(self.repository, self.publisher, request)
            except PersistenceError as e:
                result.fail(BookingState.persistence_failed, e)
                return
            result.advance(BookingState.waitlisted)
            return

        error.details.setdefault("reason", "tables")
        error.details["alternatives"] = alternatives
        error.details["waitlist_available"] = waitlist_open
        result.fail(BookingState.no_capacity, error)


def _request_for_change(booking: Booking, changes: BookingChanges) -> BookingRequest:
    def pick(new, current):
        return current if new is None else new

    return BookingRequest(
        restaurant_id=booking.restaurant_id,
        booking_date=pick(changes.booking_date, booking.booking_date),
        start_time=pick(changes.start_time, booking.start_time),
        party_size=pick(changes.party_size, booking.party_size),
        customer_name=pick(changes.customer_name, booking.customer_name),
        customer_email=pick(changes.customer_email, booking.customer_email),
        customer_phone=pick(changes.customer_phone, booking.customer_phone),
        notes=pick(changes.notes, booking.notes),
        source="staff",
        override_caps=changes.override_caps,
    )
