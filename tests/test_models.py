"""ORM mappings and constraints the engine relies on."""

from datetime import date, time

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import configure_mappers

from conftest import add_table, make_restaurant
from tablekeeper.db.base import Base
from tablekeeper.models import Booking, BookingLock, BookingTable


def _booking(restaurant, code, table=None) -> Booking:
    booking = Booking(
        restaurant_id=restaurant.id,
        confirmation_code=code,
        party_size=2,
        booking_date=date(2030, 1, 4),
        start_time=time(18, 0),
        duration_minutes=120,
        customer_name="Ada Lovelace",
    )
    if table is not None:
        booking.tables = [BookingTable(table_id=table.id)]
    return booking


def test_mappers_configure():
    configure_mappers()

    assert {
        "restaurants",
        "service_periods",
        "restaurant_tables",
        "time_slot_rules",
        "turn_time_rules",
        "bookings",
        "booking_tables",
        "waitlist_entries",
        "booking_locks",
    } <= set(Base.metadata.tables)


def test_booking_defaults(db):
    restaurant = make_restaurant(db)
    table = add_table(db, restaurant, 1, 4)
    booking = _booking(restaurant, "ABCD2345", table)
    db.add(booking)
    db.commit()
    db.refresh(booking)

    assert booking.status == "confirmed"
    assert booking.source == "guest"
    assert [bt.table.number for bt in booking.tables] == ["1"]


def test_confirmation_code_unique(db):
    restaurant = make_restaurant(db)
    db.add(_booking(restaurant, "ABCD2345"))
    db.commit()

    db.add(_booking(restaurant, "ABCD2345"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_one_row_per_lock_key(db):
    db.add(BookingLock(lock_key="k", owner_token="a", expires_at=1.0))
    db.commit()

    db.add(BookingLock(lock_key="k", owner_token="b", expires_at=2.0))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
