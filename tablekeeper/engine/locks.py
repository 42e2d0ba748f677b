"""
Booking Lock Coordinator.

Distributed mutual exclusion for booking creation. Two scopes, always taken
in this order at every call site:

1. the booking-window lock ``(restaurant, date, start time)``;
2. one lock per table ``(restaurant, date, table)``, in sorted table-id order.

Locks carry a short TTL. A crashed holder's lock expires on its own and a
later acquirer proceeds; holders that run long call ``renew``. Release only
removes a lock still owned by the caller's token.

Two stores are provided: Redis (``SET NX PX`` plus compare-and-delete Lua)
and the relational database (one row per lock, unique on the key).
"""

import logging
import random
import time
import uuid
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Iterator, Optional, Protocol

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tablekeeper.core.exceptions import LockTimeout
from tablekeeper.models.booking_lock import BookingLock
from tablekeeper.utils.timeslots import format_minutes

logger = logging.getLogger(__name__)

RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

RENEW_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class LockStore(Protocol):
    def try_acquire(self, key: str, token: str, ttl_seconds: float) -> bool: ...

    def release(self, key: str, token: str) -> bool: ...

    def renew(self, key: str, token: str, ttl_seconds: float) -> bool: ...


class RedisLockStore:
    """Locks as Redis keys holding the owner token."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisLockStore":
        return cls(Redis.from_url(url, decode_responses=True))

    def try_acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        # NX: only if absent; PX: expiry in milliseconds
        return bool(self._client.set(key, token, nx=True, px=int(ttl_seconds * 1000)))

    def release(self, key: str, token: str) -> bool:
        return self._client.eval(RELEASE_SCRIPT, 1, key, token) == 1

    def renew(self, key: str, token: str, ttl_seconds: float) -> bool:
        return self._client.eval(RENEW_SCRIPT, 1, key, token, int(ttl_seconds * 1000)) == 1


class DatabaseLockStore:
    """
    Locks as rows of ``booking_locks``. The primary key on ``lock_key`` makes
    the insert the atomic test-and-set; an expired row is cleared first.
    """

    def __init__(self, session_factory: Callable, clock: Callable[[], float] = time.time) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def try_acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        db = self._session_factory()
        try:
            now = self._clock()
            db.query(BookingLock).filter(
                BookingLock.lock_key == key,
                BookingLock.expires_at <= now,
            ).delete(synchronize_session=False)
            db.add(BookingLock(lock_key=key, owner_token=token, expires_at=now + ttl_seconds))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return False
            return True
        finally:
            db.close()

    def release(self, key: str, token: str) -> bool:
        db = self._session_factory()
        try:
            count = db.query(BookingLock).filter(
                BookingLock.lock_key == key,
                BookingLock.owner_token == token,
            ).delete(synchronize_session=False)
            db.commit()
            return count == 1
        finally:
            db.close()

    def renew(self, key: str, token: str, ttl_seconds: float) -> bool:
        db = self._session_factory()
        try:
            now = self._clock()
            count = db.query(BookingLock).filter(
                BookingLock.lock_key == key,
                BookingLock.owner_token == token,
                BookingLock.expires_at > now,
            ).update({"expires_at": now + ttl_seconds}, synchronize_session=False)
            db.commit()
            return count == 1
        finally:
            db.close()


@dataclass
class LockHandle:
    key: str
    token: str
    acquired_at: float
    ttl_seconds: float
    released: bool = False


STORE_ERRORS = (RedisError, SQLAlchemyError, ConnectionError, TimeoutError)


class BookingLockCoordinator:
    def __init__(
        self,
        store: LockStore,
        ttl_seconds: float = 10.0,
        max_wait_seconds: float = 5.0,
        backoff_base_seconds: float = 0.02,
        backoff_max_seconds: float = 0.5,
        key_prefix: str = "booking-lock:",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.max_wait_seconds = max_wait_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.key_prefix = key_prefix
        self._sleep = sleep
        self._clock = clock

    # --- Keys ---

    def window_key(self, restaurant_id, on_date: date, start_minute: int) -> str:
        return f"{self.key_prefix}{restaurant_id}:{on_date.isoformat()}:{format_minutes(start_minute)}"

    def table_key(self, restaurant_id, on_date: date, table_id) -> str:
        return f"{self.key_prefix}{restaurant_id}:{on_date.isoformat()}:table:{table_id}"

    def table_keys(self, restaurant_id, on_date: date, table_ids: Iterable) -> list[str]:
        return [self.table_key(restaurant_id, on_date, t) for t in sorted(table_ids, key=str)]

    # --- Acquire / release ---

    def _backoff(self, attempt: int, remaining: float) -> float:
        ceiling = min(self.backoff_max_seconds, self.backoff_base_seconds * (2 ** attempt))
        return max(0.0, min(random.uniform(0, ceiling), remaining))

    def acquire(self, key: str, max_wait_seconds: Optional[float] = None) -> LockHandle:
        """Block until ``key`` is held or the wait ceiling passes (``LockTimeout``)."""
        max_wait = self.max_wait_seconds if max_wait_seconds is None else max_wait_seconds
        token = uuid.uuid4().hex
        started = self._clock()
        deadline = started + max_wait
        attempt = 0
        last_error: Optional[Exception] = None

        while True:
            try:
                if self.store.try_acquire(key, token, self.ttl_seconds):
                    logger.debug("Acquired lock %s (ttl=%ss, attempts=%d)", key, self.ttl_seconds, attempt + 1)
                    return LockHandle(key=key, token=token, acquired_at=self._clock(), ttl_seconds=self.ttl_seconds)
            except STORE_ERRORS as e:
                last_error = e
                logger.warning("Lock store error acquiring %s: %s", key, e)

            remaining = deadline - self._clock()
            if remaining <= 0:
                waited = self._clock() - started
                logger.warning("Timed out after %.2fs waiting for lock %s", waited, key)
                details = {"lock_key": key, "waited_seconds": round(waited, 3), "attempts": attempt + 1}
                if last_error is not None:
                    details["store_error"] = str(last_error)
                raise LockTimeout("Another booking for this time is in progress, please retry", details)

            self._sleep(self._backoff(attempt, remaining))
            attempt += 1

    def release(self, handle: LockHandle) -> bool:
        if handle.released:
            return False
        handle.released = True
        try:
            released = self.store.release(handle.key, handle.token)
        except STORE_ERRORS as e:
            # The TTL reclaims it
            logger.error("Lock store error releasing %s: %s", handle.key, e)
            return False
        if released:
            logger.debug("Released lock %s", handle.key)
        else:
            logger.warning("Lock %s expired or changed owner before release", handle.key)
        return released

    def renew(self, handle: LockHandle) -> bool:
        """Extend a held lock by a full TTL. False when it already expired."""
        if handle.released:
            return False
        renewed = self.store.renew(handle.key, handle.token, self.ttl_seconds)
        if renewed:
            handle.acquired_at = self._clock()
        else:
            logger.warning("Could not renew lock %s, it is no longer ours", handle.key)
        return renewed

    def ensure_held(self, handle: LockHandle) -> None:
        """Renew ``handle`` once half its TTL has passed; ``LockTimeout`` if it is no longer ours."""
        if handle.released:
            raise LockTimeout("Booking lock was already released", {"lock_key": handle.key})
        if self._clock() - handle.acquired_at < handle.ttl_seconds / 2:
            return
        try:
            renewed = self.renew(handle)
        except STORE_ERRORS as e:
            logger.warning("Lock store error renewing %s: %s", handle.key, e)
            renewed = False
        if not renewed:
            raise LockTimeout("Booking lock expired before commit, please retry", {"lock_key": handle.key})

    @contextmanager
    def hold(self, key: str, max_wait_seconds: Optional[float] = None) -> Iterator[LockHandle]:
        handle = self.acquire(key, max_wait_seconds)
        try:
            yield handle
        finally:
            self.release(handle)

    @contextmanager
    def hold_all(self, keys: Iterable[str]) -> Iterator[list[LockHandle]]:
        """Acquire ``keys`` in the order given; release every acquired lock on exit."""
        with ExitStack() as stack:
            yield [stack.enter_context(self.hold(key)) for key in keys]

    @contextmanager
    def hold_window(self, restaurant_id, on_date: date, start_minute: int) -> Iterator[LockHandle]:
        with self.hold(self.window_key(restaurant_id, on_date, start_minute)) as handle:
            yield handle

    @contextmanager
    def hold_tables(self, restaurant_id, on_date: date, table_ids: Iterable) -> Iterator[list[LockHandle]]:
        with self.hold_all(self.table_keys(restaurant_id, on_date, table_ids)) as handles:
            yield handles


def build_lock_coordinator(settings, session_factory: Callable) -> BookingLockCoordinator:
    if settings.LOCK_BACKEND == "database":
        store: LockStore = DatabaseLockStore(session_factory)
    elif settings.LOCK_BACKEND == "redis":
        store = RedisLockStore.from_url(settings.REDIS_URL)
    else:
        raise ValueError(f"Unknown LOCK_BACKEND {settings.LOCK_BACKEND!r}")
    return BookingLockCoordinator(
        store,
        ttl_seconds=settings.LOCK_TTL_SECONDS,
        max_wait_seconds=settings.LOCK_MAX_WAIT_SECONDS,
        backoff_base_seconds=settings.LOCK_BACKOFF_BASE_SECONDS,
        backoff_max_seconds=settings.LOCK_BACKOFF_MAX_SECONDS,
        key_prefix=settings.LOCK_KEY_PREFIX,
    )
