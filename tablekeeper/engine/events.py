"""
Booking lifecycle events.

The engine only publishes; fan-out to dashboards is the broadcast
collaborator's job. A failed publish is logged and never undoes the booking
change that triggered it.
"""

import json
import logging
import threading
from datetime import date, datetime, time
from typing import Any, Callable, Protocol
from uuid import UUID

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_UPDATED = "booking.updated"
WAITLIST_ADDED = "waitlist.added"
WAITLIST_PROMOTED = "waitlist.promoted"


def _default(value: Any):
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    raise TypeError(f"Cannot serialise {type(value).__name__}")


def encode_event(event_type: str, payload: dict) -> str:
    return json.dumps({"type": event_type, "data": payload}, default=_default)


class EventPublisher(Protocol):
    def publish(self, event_type: str, restaurant_id, payload: dict) -> None: ...


class InMemoryEventBus:
    """In-process subscribers; the default when no broker is configured."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[str, dict], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[str, dict], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[str, dict], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, event_type: str, restaurant_id, payload: dict) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        event = dict(payload, restaurant_id=restaurant_id)
        for callback in subscribers:
            try:
                callback(event_type, event)
            except Exception:
                logger.exception("Event subscriber failed for %s", event_type)


class RedisEventPublisher:
    """
    Redis Pub/Sub publisher.
    Channel: {prefix}:{restaurant_id}
    """

    def __init__(self, client: Redis, channel_prefix: str = "restaurant-events") -> None:
        self._client = client
        self._channel_prefix = channel_prefix

    def channel(self, restaurant_id) -> str:
        return f"{self._channel_prefix}:{restaurant_id}"

    def publish(self, event_type: str, restaurant_id, payload: dict) -> None:
        channel = self.channel(restaurant_id)
        try:
            self._client.publish(channel, encode_event(event_type, dict(payload, restaurant_id=restaurant_id)))
            logger.debug("Published %s to %s", event_type, channel)
        except RedisError as e:
            logger.warning("Publish of %s to %s failed: %s", event_type, channel, e)


def build_event_publisher(settings) -> EventPublisher:
    if settings.EVENT_BACKEND == "redis":
        return RedisEventPublisher(Redis.from_url(settings.REDIS_URL), settings.EVENT_CHANNEL_PREFIX)
    if settings.EVENT_BACKEND == "memory":
        return InMemoryEventBus()
    raise ValueError(f"Unknown EVENT_BACKEND {settings.EVENT_BACKEND!r}")


def booking_event_payload(booking) -> dict:
    return {
        "booking_id": booking.id,
        "confirmation_code": booking.confirmation_code,
        "date": booking.booking_date,
        "start_time": booking.start_time,
        "duration_minutes": booking.duration_minutes,
        "party_size": booking.party_size,
        "status": booking.status,
        "table_ids": [bt.table_id for bt in booking.tables],
    }
