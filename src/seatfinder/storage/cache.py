"""
Cache Module - TTL cache for seating lookup results.
====================================================

Entries expire ``ttl_seconds`` after insertion and are evicted lazily on the
read that finds them stale. The payload is the un-merged response, so a hit
is re-merged with a freshly resolved display name by the caller.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from seatfinder.shared.logging import get_logger
from seatfinder.storage.stores import KeyValueStore, MemoryStore

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """A cached payload and the time it was stored."""

    key: str
    inserted_at: float
    payload: Any

    def age(self, now: float) -> float:
        return now - self.inserted_at


class ResultCache:
    """
    Time-bounded result cache over an injected store.

    Example:
        >>> cache = ResultCache(ttl_seconds=300)
        >>> cache.set("seating_RA01_any", response)
        >>> cache.get("seating_RA01_any") is response
        True
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        store: Optional[KeyValueStore] = None,
        clock: Clock = time.monotonic,
    ):
        if ttl_seconds is None:
            from seatfinder.shared.config import get_settings

            ttl_seconds = get_settings().cache.ttl_seconds

        self.ttl_seconds = ttl_seconds
        self.store = store if store is not None else MemoryStore()
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Return a fresh payload, evicting it first if it has expired."""
        entry: Optional[CacheEntry] = self.store.get(key)
        if entry is None:
            return None

        if entry.age(self.clock()) > self.ttl_seconds:
            logger.debug(f"Cache expired: {key}")
            self.store.delete(key)
            return None

        logger.debug(f"Cache hit: {key}")
        return entry.payload

    def set(self, key: str, payload: Any) -> None:
        self.store.set(key, CacheEntry(key=key, inserted_at=self.clock(), payload=payload))

    def invalidate(self, key: str) -> None:
        self.store.delete(key)

    def clear(self) -> None:
        self.store.clear()

    def status(self) -> dict[str, Any]:
        """
        Describe the cache without mutating it.

        Returns:
            Dict with entry count, TTL, and per-entry age/expiry in seconds
        """
        now = self.clock()
        entries = []
        for key, entry in self.store.items():
            age = entry.age(now)
            entries.append(
                {
                    "key": key,
                    "ageSeconds": round(age, 1),
                    "expiresInSeconds": round(max(0.0, self.ttl_seconds - age), 1),
                    "expired": age > self.ttl_seconds,
                }
            )

        return {
            "entries": len(entries),
            "ttlSeconds": self.ttl_seconds,
            "keys": entries,
        }
