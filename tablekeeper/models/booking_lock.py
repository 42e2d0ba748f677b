from sqlalchemy import Column, String, Float
from tablekeeper.db.session import Base

class BookingLock(Base):
    """Row-per-lock store used when locks live in the relational database."""
    __tablename__ = "booking_locks"

    lock_key = Column(String(255), primary_key=True)
    owner_token = Column(String(64), nullable=False)
    expires_at = Column(Float, nullable=False, index=True)  # epoch seconds
