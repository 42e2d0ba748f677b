"""
Test configuration and fixtures.

- Environment is set before any tablekeeper module reads its settings
- Every test gets its own SQLite file database (threads share it safely)
- Locks use the database store; events go to an in-memory bus
"""

# =============================================================================
# Environment setup MUST happen before tablekeeper imports
# =============================================================================
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOCK_BACKEND"] = "database"
os.environ["EVENT_BACKEND"] = "memory"
os.environ["POLICY_CACHE_TTL_SECONDS"] = "0"
os.environ["SECRET_KEY"] = "test-secret"

from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tablekeeper.db.base import Base
from tablekeeper.engine.events import InMemoryEventBus
from tablekeeper.engine.locks import BookingLockCoordinator, DatabaseLockStore
from tablekeeper.engine.orchestrator import BookingOrchestrator
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.engine.types import BookingRequest
from tablekeeper.models import Restaurant, RestaurantTable, ServicePeriod

# Tuesday morning; FRIDAY is three days later
NOW = datetime(2030, 1, 1, 10, 0, tzinfo=timezone.utc)
FRIDAY = date(2030, 1, 4)


def upcoming(weekday: int, min_days: int = 2) -> date:
    """First date at least ``min_days`` from today falling on ``weekday`` (0 = Monday)."""
    day = date.today() + timedelta(days=min_days)
    return day + timedelta(days=(weekday - day.weekday()) % 7)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tablekeeper.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Seed data
# =============================================================================


def make_restaurant(db, periods=((4, "Dinner", time(17, 0), time(22, 0)),), **overrides) -> Restaurant:
    """Restaurant open only for the given ``(weekday, name, start, end)`` periods."""
    fields = dict(name="Chez Test", timezone="UTC", min_advance_hours=2, max_advance_days=270)
    fields.update(overrides)
    restaurant = Restaurant(**fields)
    db.add(restaurant)
    db.flush()
    for day_of_week, name, start, end in periods:
        db.add(ServicePeriod(
            restaurant_id=restaurant.id, day_of_week=day_of_week, name=name, start_time=start, end_time=end,
        ))
    db.commit()
    db.refresh(restaurant)
    return restaurant


def add_table(db, restaurant, number, max_capacity, min_capacity=1, **overrides) -> RestaurantTable:
    table = RestaurantTable(
        restaurant_id=restaurant.id,
        number=str(number),
        min_capacity=min_capacity,
        max_capacity=max_capacity,
        **overrides,
    )
    db.add(table)
    db.commit()
    db.refresh(table)
    return table


@pytest.fixture
def restaurant(db):
    """Open Fridays 17:00-22:00, slot 30 min, turn 120 min, one 4-top."""
    restaurant = make_restaurant(db)
    add_table(db, restaurant, 1, 4)
    return restaurant


# =============================================================================
# Engine wiring
# =============================================================================


@pytest.fixture
def events():
    bus = InMemoryEventBus()
    bus.received = []
    bus.subscribe(lambda event_type, payload: bus.received.append((event_type, payload)))
    return bus


@pytest.fixture
def locks(session_factory):
    return BookingLockCoordinator(
        DatabaseLockStore(session_factory),
        ttl_seconds=30.0,
        max_wait_seconds=20.0,
        backoff_base_seconds=0.005,
        backoff_max_seconds=0.05,
    )


@pytest.fixture
def repository(db):
    return BookingRepository(db)


@pytest.fixture
def orchestrator(repository, locks, events):
    return BookingOrchestrator(repository, locks, events)


def booking_request(restaurant, start=time(18, 0), party_size=4, on_date=FRIDAY, **overrides) -> BookingRequest:
    fields = dict(
        restaurant_id=restaurant.id,
        booking_date=on_date,
        start_time=start,
        party_size=party_size,
        customer_name="Ada Lovelace",
        customer_email="ada@example.com",
    )
    fields.update(overrides)
    return BookingRequest(**fields)
