"""
Application service for answering booking questions about a calendar day.

The service coordinates fetching a day's bookings through a booking source
adapter (memoized in the cache's bookings view) and delegates the decision
itself to the domain-level ``AvailabilityChecker``. The booking source is a
simple protocol so tests and the CLI can plug in their own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from ..cache.slot_cache import Generation, SlotCache
from ..config import DEFAULT_OPENING_HOURS
from ..domain.availability import AvailabilityChecker
from ..domain.models import AvailabilityResult, BookingSlot, IntervalConfig
from ..domain.slots import candidate_slots
from ..domain.time_arithmetic import DateLike, date_key, format_time

logger = logging.getLogger(__name__)


class BookingSourceProtocol(Protocol):
    """Protocol describing the persistence behaviour needed by the service."""

    async def fetch_bookings(self, day: str) -> List[BookingSlot]:
        """Return every booking on ``day`` ("YYYY-MM-DD")."""


class BookingCalendarService:
    """
    Orchestrates booking retrieval, caching and availability checks.

    The booking-creation, cancellation and reschedule flows must call
    ``booking_changed`` right after persisting a change.
    """

    def __init__(
        self,
        booking_source: BookingSourceProtocol,
        checker: AvailabilityChecker,
        cache: Optional[SlotCache] = None,
        interval: Optional[IntervalConfig] = None,
    ) -> None:
        self._booking_source = booking_source
        self._checker = checker
        self._cache = cache if cache is not None else checker.cache
        self._interval = interval

    @property
    def checker(self) -> AvailabilityChecker:
        return self._checker

    def _generation(self, day: DateLike) -> Optional[Generation]:
        if self._cache is None:
            return None
        return self._cache.generation(day)

    async def get_bookings(self, day: DateLike) -> Tuple[BookingSlot, ...]:
        """Bookings of ``day``, from the cache or freshly loaded."""
        key = date_key(day)
        return await self._load_bookings(key, self._generation(key))

    async def _load_bookings(
        self, key: str, generation: Optional[Generation]
    ) -> Tuple[BookingSlot, ...]:
        if self._cache is not None:
            cached = self._cache.get_bookings(key)
            if cached is not None:
                return cached

        bookings = tuple(await self._booking_source.fetch_bookings(key))
        logger.debug("Loaded %d bookings for %s", len(bookings), key)

        # A booking_changed during the fetch makes this list stale for the cache.
        if self._cache is not None:
            self._cache.set_bookings(key, bookings, generation=generation)

        return bookings

    async def check_slot(
        self,
        *,
        day: DateLike,
        time_of_day: str,
        duration_minutes: int,
        resource_id: Optional[str] = None,
        resource_available: bool = True,
    ) -> AvailabilityResult:
        """Can ``resource_id`` take a ``duration_minutes`` service at this time?"""
        key = date_key(day)
        generation = self._generation(key)
        bookings = await self._load_bookings(key, generation)

        return self._checker.check(
            day,
            time_of_day,
            duration_minutes,
            bookings,
            self._interval,
            resource_id,
            resource_available=resource_available,
            generation=generation,
        )

    async def day_board(
        self,
        *,
        day: DateLike,
        duration_minutes: int,
        resource_id: Optional[str] = None,
    ) -> List[Tuple[str, AvailabilityResult]]:
        """
        Availability of every grid slot of the day, in order.

        The grid spans the checker's business hours (08:00-18:00 when none
        are configured).
        """
        key = date_key(day)
        generation = self._generation(key)
        bookings = await self._load_bookings(key, generation)
        hours = self._checker.business_hours or DEFAULT_OPENING_HOURS

        starts = candidate_slots(
            hours.start_time,
            hours.end_time,
            day,
            self._checker.granularity_minutes,
            self._checker.timezone,
        )

        board: List[Tuple[str, AvailabilityResult]] = []
        for start in starts:
            label = format_time(start)
            result = self._checker.check(
                day,
                label,
                duration_minutes,
                bookings,
                self._interval,
                resource_id,
                generation=generation,
            )
            board.append((label, result))

        return board

    async def unavailable_slots(self, day: DateLike) -> List[str]:
        """Sorted labels blocked by bookings or the interval."""
        bookings = await self.get_bookings(day)
        return sorted(self._checker.unavailable_slots(day, bookings, self._interval))

    async def preload_dates(self, days: Iterable[DateLike]) -> int:
        """
        Warm the bookings view for several days concurrently.

        Days already cached are skipped. A failing fetch is logged and does
        not stop the others. Returns how many days were loaded.
        """
        keys = [date_key(day) for day in days]
        pending = [
            key for key in keys
            if self._cache is None or self._cache.get_bookings(key) is None
        ]

        results = await asyncio.gather(
            *(self.get_bookings(key) for key in pending),
            return_exceptions=True,
        )

        loaded = 0
        for key, outcome in zip(pending, results):
            if isinstance(outcome, BaseException):
                logger.warning("Failed to preload bookings for %s: %s", key, outcome)
            else:
                loaded += 1

        return loaded

    def booking_changed(self, day: DateLike, resource_id: Optional[str] = None) -> int:
        """Invalidate everything the change on ``day`` could have made stale."""
        if self._cache is None:
            return 0

        removed = self._cache.invalidate_date(day)
        if resource_id:
            removed += self._cache.invalidate_resource(resource_id)
        return removed

    @staticmethod
    def sort_by_end(bookings: Sequence[BookingSlot]) -> List[BookingSlot]:
        """
        Order bookings latest-ending first.

        ``check_availability`` reports the first conflicting booking it
        meets, so callers that want ``occupied_until`` to be the latest end
        pass the list through this first.
        """
        return sorted(bookings, key=lambda booking: booking.end, reverse=True)
