"""
A keyed TTL map with lazy expiry and hit/miss accounting.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A stored value with its creation time and time-to-live, in seconds."""
    value: V
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


@dataclass(frozen=True)
class StoreStats:
    name: str
    size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLStore(Generic[K, V]):
    """
    Thread-safe TTL map.

    An entry is invisible from the moment ``now - created_at >= ttl``. Reads
    drop expired entries as they meet them; ``purge_expired`` removes the
    rest. Stores belonging to one cache share a lock so that cross-store
    invalidation is atomic.
    """

    def __init__(
        self,
        name: str,
        default_ttl: float,
        clock: Clock = time.monotonic,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        self.name = name
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = lock or threading.RLock()
        self._entries: Dict[K, CacheEntry[V]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                logger.debug("Cache EXPIRED in %s: %s", self.name, key)
                return None

            self._hits += 1
            return entry.value

    def set(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl <= 0:
            raise ValueError(f"ttl must be positive, got {effective_ttl}")

        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                created_at=self._clock(),
                ttl=effective_ttl,
            )

    def remove_where(self, predicate: Callable[[K], bool]) -> int:
        """Remove every entry whose key satisfies ``predicate``."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self, reset_stats: bool = False) -> None:
        with self._lock:
            self._entries.clear()
            if reset_stats:
                self._hits = 0
                self._misses = 0

    def stats(self) -> StoreStats:
        with self._lock:
            return StoreStats(
                name=self.name,
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
