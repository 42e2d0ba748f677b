import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Integer, ForeignKey, Time, Uuid
from sqlalchemy.orm import relationship
from tablekeeper.db.session import Base

class TimeSlotRule(Base):
    __tablename__ = "time_slot_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    day_of_week = Column(Integer, nullable=True)  # NULL = applies to all days
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)
    max_concurrent_bookings = Column(Integer, nullable=True)
    turn_time_minutes = Column(Integer, nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    restaurant = relationship("Restaurant", back_populates="time_slot_rules")


class TurnTimeRule(Base):
    __tablename__ = "turn_time_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    min_party_size = Column(Integer, nullable=False)
    max_party_size = Column(Integer, nullable=False)
    turn_time_minutes = Column(Integer, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    restaurant = relationship("Restaurant", back_populates="turn_time_rules")
