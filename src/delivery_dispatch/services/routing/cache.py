"""Time-bounded caches for route and delivery zone lookups.

Caches are plain objects constructed once per process and passed to the
components that need them. Expiry is checked when an entry is read; nothing
is evicted in the background.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Generic, Hashable, Sequence, TypeVar

from ...models.domain import Coordinate
from .models import CachedRoute

logger = logging.getLogger(__name__)

V = TypeVar("V")

Clock = Callable[[], float]


class TTLCache(Generic[V]):
    """Thread-safe key/value store whose entries expire after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float, clock: Clock | None = None) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[Hashable, tuple[V, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def clear(self, predicate: Callable[[Hashable], bool] | None = None) -> int:
        with self._lock:
            if predicate is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def keys(self) -> list[Hashable]:
        now = self._clock()
        with self._lock:
            return [key for key, (_, stored_at) in self._entries.items() if now - stored_at < self.ttl_seconds]

    def __len__(self) -> int:
        return len(self.keys())


def _format(coordinate: Coordinate) -> str:
    return f"{coordinate.lat:.4f},{coordinate.lon:.4f}"


class RouteCache:
    """Memoizes distance and route computations between the supplier and destinations."""

    KEY_PREFIX = "route-"

    def __init__(self, ttl_seconds: float, clock: Clock | None = None, store: TTLCache[Any] | None = None) -> None:
        # A shared store may also hold non-route entries; only "route-" keys are ours.
        self._store: TTLCache[Any] = store or TTLCache(ttl_seconds, clock)

    @classmethod
    def make_key(cls, origin: Coordinate, destinations: Sequence[Coordinate], optimize: bool = False) -> str:
        """Rounded to 4 decimals (~11m) with sorted destinations, so input order does not matter."""
        destination_part = "|".join(sorted(_format(destination) for destination in destinations))
        return f"{cls.KEY_PREFIX}{_format(origin)}-{destination_part}{'-opt' if optimize else ''}"

    def get_cached_route(
        self, origin: Coordinate, destinations: Sequence[Coordinate], optimize: bool = False
    ) -> CachedRoute | None:
        key = self.make_key(origin, destinations, optimize)
        cached = self._store.get(key)
        if cached is not None:
            logger.debug(f"Route cache hit: {key}")
        return cached

    def set_cached_route(
        self,
        origin: Coordinate,
        destinations: Sequence[Coordinate],
        route: CachedRoute,
        optimize: bool = False,
    ) -> None:
        key = self.make_key(origin, destinations, optimize)
        self._store.set(key, route)
        logger.debug(f"Route cache set: {key}")

    def invalidate_all(self) -> int:
        removed = self._store.clear(lambda key: isinstance(key, str) and key.startswith(self.KEY_PREFIX))
        logger.info(f"Route cache invalidated ({removed} entries)")
        return removed

    def stats(self) -> dict[str, int]:
        size = sum(1 for key in self._store.keys() if isinstance(key, str) and key.startswith(self.KEY_PREFIX))
        return {"size": size}
