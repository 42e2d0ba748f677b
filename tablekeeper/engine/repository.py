"""
Storage gateway.

The only module of the engine that touches SQLAlchemy. Reads return
immutable snapshots; writes commit their own unit of work and translate
driver failures into ``PersistenceError``.
"""

import logging
import uuid
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from tablekeeper.core.exceptions import BookingNotFound, InvalidStatusTransition, PersistenceError
from tablekeeper.engine.cache import PolicyCache
from tablekeeper.engine.types import (
    BookingSnapshot,
    OpeningPeriod,
    RestaurantPolicy,
    TableSnapshot,
    TimeSlotRuleSpec,
    TurnTimeRuleSpec,
)
from tablekeeper.models.booking import Booking, BookingStatus, BookingTable
from tablekeeper.models.restaurant import Restaurant, ServicePeriod
from tablekeeper.models.rules import TimeSlotRule, TurnTimeRule
from tablekeeper.models.table import RestaurantTable
from tablekeeper.models.waitlist import WaitlistEntry, WaitlistStatus
from tablekeeper.utils.codes import make_unique_confirmation_code
from tablekeeper.utils.timeslots import MINUTES_PER_DAY, to_minutes

logger = logging.getLogger(__name__)

CODE_COLLISION_RETRIES = 3


def _end_minutes(value: time) -> int:
    """End times of 00:00 mean midnight at the end of the day."""
    minutes = to_minutes(value)
    return MINUTES_PER_DAY if minutes == 0 else minutes


def booking_snapshot(booking: Booking) -> BookingSnapshot:
    return BookingSnapshot(
        id=booking.id,
        table_ids=frozenset(bt.table_id for bt in booking.tables),
        start_minute=to_minutes(booking.start_time),
        duration_minutes=booking.duration_minutes,
        party_size=booking.party_size,
        status=booking.status,
    )


def table_snapshot(table: RestaurantTable) -> TableSnapshot:
    return TableSnapshot(
        id=table.id,
        number=table.number,
        min_capacity=table.min_capacity,
        max_capacity=table.max_capacity,
        is_combinable=bool(table.is_combinable),
        priority=table.priority or 0,
        is_active=bool(table.is_active),
    )


class BookingRepository:
    def __init__(self, db: Session, cache: Optional[PolicyCache] = None) -> None:
        self.db = db
        self.cache = cache

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def load_policy(self, restaurant_id: UUID) -> RestaurantPolicy:
        if self.cache is not None:
            cached = self.cache.get(restaurant_id)
            if cached is not None:
                return cached
        try:
            policy = self._read_policy(restaurant_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Could not read restaurant configuration", {"restaurant_id": str(restaurant_id)}) from e
        if self.cache is not None:
            self.cache.put(policy)
        return policy

    def _read_policy(self, restaurant_id: UUID) -> RestaurantPolicy:
        restaurant = (
            self.db.query(Restaurant)
            .filter(Restaurant.id == restaurant_id, Restaurant.is_active == True)  # noqa: E712
            .first()
        )
        if not restaurant:
            raise BookingNotFound("Restaurant not found", {"restaurant_id": str(restaurant_id)})

        periods = (
            self.db.query(ServicePeriod)
            .filter(ServicePeriod.restaurant_id == restaurant_id)
            .order_by(ServicePeriod.day_of_week, ServicePeriod.start_time)
            .all()
        )
        slot_rules = (
            self.db.query(TimeSlotRule)
            .filter(TimeSlotRule.restaurant_id == restaurant_id, TimeSlotRule.is_active == True)  # noqa: E712
            .all()
        )
        turn_rules = (
            self.db.query(TurnTimeRule)
            .filter(TurnTimeRule.restaurant_id == restaurant_id, TurnTimeRule.is_active == True)  # noqa: E712
            .all()
        )

        return RestaurantPolicy(
            restaurant_id=restaurant.id,
            timezone=restaurant.timezone or "UTC",
            default_slot_duration=restaurant.default_slot_duration,
            default_turn_time=restaurant.default_turn_time,
            buffer_minutes=restaurant.buffer_minutes or 0,
            min_advance_hours=restaurant.min_advance_hours,
            max_advance_days=restaurant.max_advance_days,
            max_party_size=restaurant.max_party_size,
            max_concurrent_tables=restaurant.max_concurrent_tables,
            max_concurrent_covers=restaurant.max_concurrent_covers,
            enable_waitlist=bool(restaurant.enable_waitlist),
            auto_confirm=bool(restaurant.auto_confirm),
            opening_periods=tuple(
                OpeningPeriod(
                    day_of_week=p.day_of_week,
                    name=p.name,
                    start_minute=to_minutes(p.start_time),
                    end_minute=_end_minutes(p.end_time),
                    slot_duration=p.slot_duration,
                )
                for p in periods
            ),
            time_slot_rules=tuple(
                TimeSlotRuleSpec(
                    id=r.id,
                    name=r.name,
                    day_of_week=r.day_of_week,
                    start_minute=to_minutes(r.start_time),
                    end_minute=_end_minutes(r.end_time),
                    slot_duration=r.slot_duration,
                    max_concurrent_bookings=r.max_concurrent_bookings,
                    turn_time_minutes=r.turn_time_minutes,
                    priority=r.priority or 0,
                )
                for r in slot_rules
            ),
            turn_time_rules=tuple(
                TurnTimeRuleSpec(
                    id=r.id,
                    min_party_size=r.min_party_size,
                    max_party_size=r.max_party_size,
                    turn_time_minutes=r.turn_time_minutes,
                    priority=r.priority or 0,
                )
                for r in turn_rules
            ),
        )

    def add_time_slot_rule(self, rule: TimeSlotRule) -> TimeSlotRule:
        return self._add_rule(rule)

    def add_turn_time_rule(self, rule: TurnTimeRule) -> TurnTimeRule:
        return self._add_rule(rule)

    def _add_rule(self, rule):
        try:
            self.db.add(rule)
            self.db.commit()
            self.db.refresh(rule)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Could not save rule") from e
        if self.cache is not None:
            self.cache.invalidate(rule.restaurant_id)
        return rule

    # ------------------------------------------------------------------
    # Tables & bookings
    # ------------------------------------------------------------------

    def list_tables(self, restaurant_id: UUID) -> tuple[TableSnapshot, ...]:
        try:
            tables = (
                self.db.query(RestaurantTable)
                .filter(RestaurantTable.restaurant_id == restaurant_id, RestaurantTable.is_active == True)  # noqa: E712
                .order_by(RestaurantTable.priority, RestaurantTable.number)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Could not read table inventory", {"restaurant_id": str(restaurant_id)}) from e
        return tuple(table_snapshot(t) for t in tables)

    def list_bookings(self, restaurant_id: UUID, on_date: date) -> list[BookingSnapshot]:
        """Every non-cancelled booking of the day, as seen right now."""
        try:
            # Fresh read: anything cached in the identity map may be stale
            self.db.expire_all()
            bookings = (
                self.db.query(Booking)
                .options(selectinload(Booking.tables))
                .filter(
                    Booking.restaurant_id == restaurant_id,
                    Booking.booking_date == on_date,
                    Booking.status != BookingStatus.cancelled.value,
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Could not read bookings", {"restaurant_id": str(restaurant_id), "date": on_date.isoformat()}) from e
        return [booking_snapshot(b) for b in bookings]

    def create_booking(
        self,
        *,
        restaurant_id: UUID,
        table_ids: Iterable[UUID],
        party_size: int,
        on_date: date,
        start_time: time,
        duration_minutes: int,
        status: str,
        source: str,
        customer_name: str,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        notes: Optional[str] = None,
        waitlist_entry_id: Optional[UUID] = None,
    ) -> Booking:
        """
        Insert a booking and its tables in one commit. With ``waitlist_entry_id``
        the entry is marked promoted in that same commit.
        """
        table_ids = list(table_ids)
        if waitlist_entry_id is not None:
            entry = self.get_waitlist_entry(waitlist_entry_id)
            if entry.status != WaitlistStatus.waiting.value:
                raise InvalidStatusTransition(
                    "Waitlist entry is no longer waiting",
                    {"entry_id": str(waitlist_entry_id), "status": entry.status},
                )
        for attempt in range(CODE_COLLISION_RETRIES):
            try:
                booking = Booking(
                    id=uuid.uuid4(),
                    restaurant_id=restaurant_id,
                    confirmation_code=make_unique_confirmation_code(self.db),
                    party_size=party_size,
                    booking_date=on_date,
                    start_time=start_time,
                    duration_minutes=duration_minutes,
                    status=status,
                    source=source,
                    customer_name=customer_name,
                    customer_email=customer_email,
                    customer_phone=customer_phone,
                    notes=notes,
                )
                booking.tables = [BookingTable(table_id=t) for t in table_ids]
                self.db.add(booking)
                if waitlist_entry_id is not None:
                    self.db.flush()
                    entry = self.get_waitlist_entry(waitlist_entry_id)
                    entry.status = WaitlistStatus.promoted.value
                    entry.promoted_booking_id = booking.id
                self.db.commit()
                self.db.refresh(booking)
                return booking
            except IntegrityError as e:
                # Only a confirmation-code race is worth another attempt
                self.db.rollback()
                logger.warning("Booking insert collided (attempt %d): %s", attempt + 1, e.orig)
                last_error: Exception = e
            except SQLAlchemyError as e:
                self.db.rollback()
                raise PersistenceError("Could not save the booking") from e
        raise PersistenceError("Could not save the booking") from last_error

    def get_booking(self, booking_id: UUID) -> Booking:
        booking = (
            self.db.query(Booking)
            .options(selectinload(Booking.tables).selectinload(BookingTable.table))
            .filter(Booking.id == booking_id)
            .first()
        )
        if not booking:
            raise BookingNotFound("Booking not found", {"booking_id": str(booking_id)})
        return booking

    def get_booking_by_code(self, confirmation_code: str) -> Booking:
        booking = (
            self.db.query(Booking)
            .options(selectinload(Booking.tables).selectinload(BookingTable.table))
            .filter(Booking.confirmation_code == confirmation_code.upper())
            .first()
        )
        if not booking:
            raise BookingNotFound("Booking not found", {"confirmation_code": confirmation_code})
        return booking

    def list_bookings_for_date(self, restaurant_id: UUID, on_date: date, status: Optional[str] = None) -> list[Booking]:
        query = (
            self.db.query(Booking)
            .options(selectinload(Booking.tables).selectinload(BookingTable.table))
            .filter(Booking.restaurant_id == restaurant_id, Booking.booking_date == on_date)
        )
        if status:
            query = query.filter(Booking.status == status)
        try:
            return query.order_by(Booking.start_time, Booking.created_at).all()
        except SQLAlchemyError as e:
            raise PersistenceError("Could not read bookings", {"restaurant_id": str(restaurant_id), "date": on_date.isoformat()}) from e

    def reschedule_booking(
        self,
        booking: Booking,
        *,
        table_ids: Iterable[UUID],
        party_size: int,
        on_date: date,
        start_time: time,
        duration_minutes: int,
        customer_name: str,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """Move a booking and swap its tables in one commit."""
        table_ids = set(table_ids)
        try:
            # Rows for tables that stay are kept so the (booking, table) pair is never inserted twice
            kept = [bt for bt in booking.tables if bt.table_id in table_ids]
            kept_ids = {bt.table_id for bt in kept}
            booking.tables = kept + [BookingTable(table_id=t) for t in table_ids if t not in kept_ids]
            booking.party_size = party_size
            booking.booking_date = on_date
            booking.start_time = start_time
            booking.duration_minutes = duration_minutes
            booking.customer_name = customer_name
            booking.customer_email = customer_email
            booking.customer_phone = customer_phone
            booking.notes = notes
            self.db.commit()
            self.db.refresh(booking)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Could not update the booking", {"booking_id": str(booking.id)}) from e
        return booking

    def set_status(self, booking: Booking, status: str) -> Booking:
        try:
            booking.status = status
            if status == BookingStatus.cancelled.value:
                booking.cancelled_at = datetime.now(timezone.utc)
            self.db.commit()
            self.db.refresh(booking)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Could not update the booking", {"booking_id": str(booking.id)}) from e
        return booking

    # ------------------------------------------------------------------
    # Waitlist
    # ------------------------------------------------------------------

    def add_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry:
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Could not join the waitlist") from e
        return entry

    def list_waitlist(self, restaurant_id: UUID, on_date: date) -> list[WaitlistEntry]:
        """Waiting entries in FIFO order."""
        try:
            self.db.expire_all()
            return (
                self.db.query(WaitlistEntry)
                .filter(
                    WaitlistEntry.restaurant_id == restaurant_id,
                    WaitlistEntry.booking_date == on_date,
                    WaitlistEntry.status == WaitlistStatus.waiting.value,
                )
                .order_by(WaitlistEntry.requested_at, WaitlistEntry.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Could not read the waitlist", {"restaurant_id": str(restaurant_id), "date": on_date.isoformat()}) from e

    def get_waitlist_entry(self, entry_id: UUID) -> WaitlistEntry:
        entry = self.db.query(WaitlistEntry).filter(WaitlistEntry.id == entry_id).first()
        if not entry:
            raise BookingNotFound("Waitlist entry not found", {"entry_id": str(entry_id)})
        return entry

    def update_waitlist_entry(self, entry: WaitlistEntry, **changes) -> WaitlistEntry:
        try:
            for field, value in changes.items():
                setattr(entry, field, value)
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Could not update the waitlist entry") from e
        return entry
