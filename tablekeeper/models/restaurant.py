import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Integer, ForeignKey, Time, Uuid
from sqlalchemy.orm import relationship
from tablekeeper.db.session import Base

class Restaurant(Base):
    __tablename__ = "restaurants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")

    # Booking settings
    default_slot_duration = Column(Integer, nullable=False, default=30)
    default_turn_time = Column(Integer, nullable=False, default=120)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    min_advance_hours = Column(Integer, nullable=False, default=2)
    max_advance_days = Column(Integer, nullable=False, default=270)
    max_party_size = Column(Integer, nullable=False, default=20)
    max_concurrent_tables = Column(Integer, nullable=True)  # guest bookings only
    max_concurrent_covers = Column(Integer, nullable=True)  # guest bookings only
    enable_waitlist = Column(Boolean, default=True)
    auto_confirm = Column(Boolean, default=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    # Relationships
    service_periods = relationship("ServicePeriod", back_populates="restaurant", cascade="all, delete-orphan")
    tables = relationship("RestaurantTable", back_populates="restaurant", cascade="all, delete-orphan")
    time_slot_rules = relationship("TimeSlotRule", back_populates="restaurant", cascade="all, delete-orphan")
    turn_time_rules = relationship("TurnTimeRule", back_populates="restaurant", cascade="all, delete-orphan")


class ServicePeriod(Base):
    """Opening hours: one row per named service (lunch, dinner...) per weekday."""
    __tablename__ = "service_periods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday ... 6 = Sunday
    name = Column(String(100), nullable=False, default="Service")
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=True)  # falls back to restaurant default

    restaurant = relationship("Restaurant", back_populates="service_periods")
