"""
Availability cache with three TTL views and exact invalidation.

Views:
- availability: per-query AvailabilityResult, keyed by date, time,
  duration, resource and the interval/hours hash (default 5 minutes)
- blocked_slots: per-date sets of blocked labels, keyed by date, booking
  list hash and granularity (default 2 minutes)
- bookings: the raw booking list of a date (default 10 minutes)

Writers that compute a value from data read earlier take a generation
token with ``generation(day)`` before reading and hand it to the ``set_*``
call. Every invalidation moves the generation forward, so a value computed
before an invalidation is dropped instead of stored after it.

Nothing in here is allowed to fail the booking path. Internal errors are
logged, counted as faults and answered as a miss.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Optional,
    Sequence,
    Tuple,
)

from ..domain.exceptions import CacheFault
from ..domain.models import AvailabilityResult, BookingSlot, IntervalConfig
from ..domain.time_arithmetic import DateLike
from .keys import (
    AvailabilityKey,
    availability_key,
    blocked_slots_key,
    bookings_key,
    key_date,
    render_key,
)
from .store import Clock, StoreStats, TTLStore
from .sweeper import CacheSweeper

if TYPE_CHECKING:
    from ..config import CacheSettings

logger = logging.getLogger(__name__)


AVAILABILITY_TTL_SECONDS = 5 * 60
BLOCKED_SLOTS_TTL_SECONDS = 2 * 60
BOOKINGS_TTL_SECONDS = 10 * 60

# Rough per-entry footprint, only used for the stats estimate.
_ENTRY_SIZE_ESTIMATE = {"availability": 200, "blocked_slots": 500, "bookings": 1000}

# (cache-wide epoch, per-date counter)
Generation = Tuple[int, int]


@dataclass(frozen=True)
class CacheStats:
    availability: StoreStats
    blocked_slots: StoreStats
    bookings: StoreStats
    faults: int

    @property
    def stores(self) -> Tuple[StoreStats, StoreStats, StoreStats]:
        return (self.availability, self.blocked_slots, self.bookings)

    @property
    def estimated_memory_bytes(self) -> int:
        return sum(_ENTRY_SIZE_ESTIMATE[store.name] * store.size for store in self.stores)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            store.name: {
                "size": store.size,
                "hits": store.hits,
                "misses": store.misses,
                "hit_rate": round(store.hit_rate, 4),
            }
            for store in self.stores
        }
        data["faults"] = self.faults
        data["estimated_memory_bytes"] = self.estimated_memory_bytes
        return data


class SlotCache:
    """
    Process-local cache for availability answers.

    Inject one instance into every AvailabilityChecker that should share
    answers. The data-fetch layer is responsible for ``set_bookings`` after
    loading a day, and booking changes must be followed by
    ``invalidate_date`` (and ``invalidate_resource`` when a resource's
    schedule changed).
    """

    def __init__(
        self,
        availability_ttl: float = AVAILABILITY_TTL_SECONDS,
        blocked_slots_ttl: float = BLOCKED_SLOTS_TTL_SECONDS,
        bookings_ttl: float = BOOKINGS_TTL_SECONDS,
        clock: Clock = time.monotonic,
    ) -> None:
        self._lock = threading.RLock()
        self.availability: TTLStore[AvailabilityKey, AvailabilityResult] = TTLStore(
            "availability", availability_ttl, clock=clock, lock=self._lock
        )
        self.blocked_slots: TTLStore[Any, FrozenSet[str]] = TTLStore(
            "blocked_slots", blocked_slots_ttl, clock=clock, lock=self._lock
        )
        self.bookings: TTLStore[str, Tuple[BookingSlot, ...]] = TTLStore(
            "bookings", bookings_ttl, clock=clock, lock=self._lock
        )
        self._faults = 0
        self._epoch = 0
        self._date_generations: Dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings: "CacheSettings", clock: Clock = time.monotonic) -> "SlotCache":
        return cls(
            availability_ttl=settings.availability_ttl_seconds,
            blocked_slots_ttl=settings.blocked_slots_ttl_seconds,
            bookings_ttl=settings.bookings_ttl_seconds,
            clock=clock,
        )

    @property
    def stores(self) -> Tuple[TTLStore, TTLStore, TTLStore]:
        return (self.availability, self.blocked_slots, self.bookings)

    def _fault(self, operation: str, exc: Exception) -> None:
        with self._lock:
            self._faults += 1
        logger.warning("Cache fault during %s, treating as miss: %s", operation, exc)

    def generation(self, day: DateLike) -> Optional[Generation]:
        """
        Token for writes derived from data read from now on.

        ``None`` when the date cannot be normalised; the matching write
        faults on its key anyway.
        """
        try:
            target = bookings_key(day)
        except CacheFault as exc:
            self._fault("generation", exc)
            return None

        with self._lock:
            return (self._epoch, self._date_generations.get(target, 0))

    def _is_current(self, target: str, generation: Optional[Generation]) -> bool:
        # Caller holds the lock.
        if generation is None:
            return True
        return generation == (self._epoch, self._date_generations.get(target, 0))

    def get_availability(
        self,
        day: DateLike,
        time_of_day: str,
        duration_minutes: int,
        resource_id: Optional[str] = None,
        interval: Optional[IntervalConfig] = None,
        business_hours: Optional[IntervalConfig] = None,
    ) -> Optional[AvailabilityResult]:
        try:
            key = availability_key(
                day, time_of_day, duration_minutes, resource_id, interval, business_hours
            )
            return self.availability.get(key)
        except Exception as exc:
            self._fault("get_availability", exc)
            return None

    def set_availability(
        self,
        day: DateLike,
        time_of_day: str,
        duration_minutes: int,
        result: AvailabilityResult,
        resource_id: Optional[str] = None,
        interval: Optional[IntervalConfig] = None,
        business_hours: Optional[IntervalConfig] = None,
        ttl: Optional[float] = None,
        generation: Optional[Generation] = None,
    ) -> bool:
        """Store an answer; returns False when it was dropped as stale or faulted."""
        try:
            key = availability_key(
                day, time_of_day, duration_minutes, resource_id, interval, business_hours
            )
            with self._lock:
                if not self._is_current(key.date, generation):
                    logger.debug("Dropped stale availability for %s", key.render())
                    return False
                self.availability.set(key, result, ttl)
            return True
        except Exception as exc:
            self._fault("set_availability", exc)
            return False

    def get_blocked_slots(
        self,
        day: DateLike,
        bookings: Sequence[BookingSlot],
        granularity_minutes: int,
    ) -> Optional[FrozenSet[str]]:
        try:
            key = blocked_slots_key(day, bookings, granularity_minutes)
            return self.blocked_slots.get(key)
        except Exception as exc:
            self._fault("get_blocked_slots", exc)
            return None

    def set_blocked_slots(
        self,
        day: DateLike,
        bookings: Sequence[BookingSlot],
        granularity_minutes: int,
        labels: Iterable[str],
        ttl: Optional[float] = None,
        generation: Optional[Generation] = None,
    ) -> bool:
        try:
            key = blocked_slots_key(day, bookings, granularity_minutes)
            with self._lock:
                if not self._is_current(key.date, generation):
                    logger.debug("Dropped stale blocked slots for %s", key.date)
                    return False
                self.blocked_slots.set(key, frozenset(labels), ttl)
            return True
        except Exception as exc:
            self._fault("set_blocked_slots", exc)
            return False

    def get_bookings(self, day: DateLike) -> Optional[Tuple[BookingSlot, ...]]:
        try:
            return self.bookings.get(bookings_key(day))
        except Exception as exc:
            self._fault("get_bookings", exc)
            return None

    def set_bookings(
        self,
        day: DateLike,
        bookings: Iterable[BookingSlot],
        ttl: Optional[float] = None,
        generation: Optional[Generation] = None,
    ) -> bool:
        try:
            key = bookings_key(day)
            with self._lock:
                if not self._is_current(key, generation):
                    logger.debug("Dropped stale booking list for %s", key)
                    return False
                self.bookings.set(key, tuple(bookings), ttl)
            return True
        except Exception as exc:
            self._fault("set_bookings", exc)
            return False

    def invalidate_date(self, day: DateLike) -> int:
        """
        Drop every entry derived from ``day`` in all three views.

        Returns the number of removed entries. If the date cannot be
        normalised the whole cache is cleared instead.
        """
        try:
            target = bookings_key(day)
        except CacheFault as exc:
            self._fault("invalidate_date", exc)
            return self._clear_all()

        with self._lock:
            self._date_generations[target] = self._date_generations.get(target, 0) + 1
            removed = sum(
                store.remove_where(lambda key: key_date(key) == target)
                for store in self.stores
            )

        logger.debug("Invalidated %d cache entries for %s", removed, target)
        return removed

    def invalidate_resource(self, resource_id: str) -> int:
        """Drop availability answers scoped to ``resource_id`` only."""
        if not resource_id:
            return 0

        with self._lock:
            # Resource entries span every date.
            self._epoch += 1
            removed = self.availability.remove_where(
                lambda key: key.resource_id == resource_id
            )
        logger.debug("Invalidated %d availability entries for resource %s", removed, resource_id)
        return removed

    def invalidate_pattern(self, pattern: str, stores: Optional[Iterable[str]] = None) -> int:
        """
        Drop entries whose rendered key matches a glob pattern.

        Rendered keys look like ``2025-02-07|14:00|30|barber-1|no-interval``
        (availability), ``2025-02-07|<hash>|30`` (blocked slots) and
        ``2025-02-07`` (bookings).
        """
        selected = set(stores) if stores is not None else None

        with self._lock:
            self._epoch += 1
            removed = 0
            for store in self.stores:
                if selected is not None and store.name not in selected:
                    continue
                removed += store.remove_where(
                    lambda key: fnmatch.fnmatchcase(render_key(key), pattern)
                )
        return removed

    def _clear_all(self) -> int:
        with self._lock:
            removed = sum(len(store) for store in self.stores)
            for store in self.stores:
                store.clear()
            self._epoch += 1
            self._date_generations.clear()
        return removed

    def clear(self) -> None:
        """Empty all views and reset the counters."""
        with self._lock:
            for store in self.stores:
                store.clear(reset_stats=True)
            self._faults = 0
            self._epoch += 1
            self._date_generations.clear()

    def purge_expired(self) -> int:
        """Physically remove expired entries, one view at a time."""
        removed = 0
        for store in self.stores:
            removed += store.purge_expired()
        return removed

    def start_auto_cleanup(self, interval_seconds: float = AVAILABILITY_TTL_SECONDS) -> CacheSweeper:
        """Start a background sweeper; the caller stops it on shutdown."""
        sweeper = CacheSweeper(self, interval_seconds)
        sweeper.start()
        return sweeper

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                availability=self.availability.stats(),
                blocked_slots=self.blocked_slots.stats(),
                bookings=self.bookings.stats(),
                faults=self._faults,
            )
