import time as _time
from datetime import time

from sqlalchemy.orm import Session

from tablekeeper.models.booking_lock import BookingLock

MINUTES_PER_DAY = 24 * 60
WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def to_minutes(value: time) -> int:
    """Minutes since midnight. Seconds are ignored."""
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def release_expired_locks(db: Session) -> int:
    """
    Delete database-backed booking locks whose TTL has passed.

    Expired rows are already ignored by acquirers; sweeping only keeps the
    table small. Returns the number of rows removed.
    """
    count = (
        db.query(BookingLock)
        .filter(BookingLock.expires_at < _time.time())
        .delete(synchronize_session=False)
    )
    db.commit()
    return count
