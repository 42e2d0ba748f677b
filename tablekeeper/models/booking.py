import uuid
import enum
from sqlalchemy import Column, String, DateTime, func, Integer, ForeignKey, Text, Date, Time, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from tablekeeper.db.session import Base

class BookingStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"
    no_show = "no_show"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False, index=True)
    confirmation_code = Column(String(12), unique=True, nullable=False, index=True)
    party_size = Column(Integer, nullable=False)
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)  # frozen at creation
    status = Column(String(20), default=BookingStatus.confirmed.value, index=True)
    source = Column(String(20), nullable=False, default="guest")  # guest, staff, waitlist
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(40), nullable=True)
    notes = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    # Relationships
    tables = relationship("BookingTable", back_populates="booking", cascade="all, delete-orphan")


class BookingTable(Base):
    """A booking reserves one table, or a combination of tables as a set."""
    __tablename__ = "booking_tables"
    __table_args__ = (UniqueConstraint("booking_id", "table_id", name="uniq_booking_table"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=False, index=True)
    table_id = Column(Uuid, ForeignKey("restaurant_tables.id"), nullable=False, index=True)

    booking = relationship("Booking", back_populates="tables")
    table = relationship("RestaurantTable")
