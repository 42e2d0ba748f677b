import threading
import time
from typing import Callable, Optional

from tablekeeper.engine.types import RestaurantPolicy


class PolicyCache:
    """
    Per-restaurant policy snapshots, kept for ``ttl_seconds`` and dropped
    explicitly whenever the restaurant's rules are written.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, RestaurantPolicy]] = {}
        self._lock = threading.Lock()

    def get(self, restaurant_id) -> Optional[RestaurantPolicy]:
        key = str(restaurant_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, policy = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return policy

    def put(self, policy: RestaurantPolicy) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[str(policy.restaurant_id)] = (self._clock(), policy)

    def invalidate(self, restaurant_id) -> None:
        with self._lock:
            self._entries.pop(str(restaurant_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
