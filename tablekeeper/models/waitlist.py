import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Date, Time, Uuid
from tablekeeper.db.session import Base

class WaitlistStatus(str, enum.Enum):
    waiting = "waiting"
    promoted = "promoted"
    removed = "removed"


def _utcnow():
    return datetime.now(timezone.utc)


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False, index=True)
    booking_date = Column(Date, nullable=False, index=True)
    requested_time = Column(Time, nullable=False)
    party_size = Column(Integer, nullable=False)
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(40), nullable=True)
    notes = Column(String(500), nullable=True)
    status = Column(String(20), default=WaitlistStatus.waiting.value, index=True)
    requested_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    promoted_booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=True)
