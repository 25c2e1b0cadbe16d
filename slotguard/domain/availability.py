"""
Slot availability decisions.

``check_availability`` is the pure decision function. ``AvailabilityChecker``
wraps it with an optional, injected ``SlotCache``; without a cache it is just
as pure. Concurrent misses on the same key may both compute and both store,
which is harmless because the computation is deterministic.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, FrozenSet, Optional, Sequence

from .conflicts import conflicts, conflicts_with_interval
from .models import AvailabilityResult, BookingSlot, IntervalConfig, TimeRange, UnavailableReason
from .slots import DEFAULT_GRANULARITY_MINUTES, blocked_slots, interval_blocked_slots
from .time_arithmetic import (
    CALENDAR_TIMEZONE,
    DateLike,
    date_key,
    end_of,
    format_time,
    parse_time_of_day,
    to_instant,
)

if TYPE_CHECKING:
    from ..cache.slot_cache import Generation, SlotCache
    from ..config import EngineConfig

logger = logging.getLogger(__name__)


# Service id carried by the not-yet-persisted booking being checked.
PENDING_SERVICE_ID = "pending"


def check_availability(
    day: DateLike,
    time_of_day: str,
    duration_minutes: int,
    bookings: Sequence[BookingSlot],
    interval: Optional[IntervalConfig] = None,
    resource_id: Optional[str] = None,
    *,
    business_hours: Optional[IntervalConfig] = None,
    tz: str = CALENDAR_TIMEZONE,
) -> AvailabilityResult:
    """
    Decide whether a slot can be booked.

    Checks, first match wins:
    1. business hours (only when ``business_hours`` is given)
    2. the blocking interval, which applies to every resource
    3. existing bookings, in input order; the first conflicting booking
       sets ``occupied_until``
    """
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")

    slot_start = to_instant(day, time_of_day, tz)
    slot_range = TimeRange(start=slot_start, end=end_of(slot_start, duration_minutes))

    if business_hours is not None:
        hours = business_hours.to_range(day, tz)
        if not hours.start <= slot_range.start < hours.end:
            return AvailabilityResult.blocked(
                UnavailableReason.OUTSIDE_HOURS,
                f"Outside business hours {business_hours.label()}",
            )
        if slot_range.end > hours.end:
            return AvailabilityResult.blocked(
                UnavailableReason.INSUFFICIENT_TIME,
                f"Not enough time before closing at {business_hours.end_time}",
            )

    if interval is not None and conflicts_with_interval(slot_range, interval, day, tz):
        return AvailabilityResult.blocked(
            UnavailableReason.INTERVAL,
            f"Blocked interval {interval.label()}",
        )

    candidate = BookingSlot(
        range=slot_range,
        service_id=PENDING_SERVICE_ID,
        duration_minutes=duration_minutes,
        resource_id=resource_id,
    )

    for booking in bookings:
        if conflicts(candidate, booking):
            return AvailabilityResult.blocked(
                UnavailableReason.OCCUPIED,
                f"Occupied until {format_time(booking.end)}",
                occupied_until=booking.end,
            )

    return AvailabilityResult.free()


class AvailabilityChecker:
    """
    Memoizing front for ``check_availability``.

    Pass the SlotCache to share answers with, or ``None`` for the pure
    variant. Business hours, the calendar zone and the slot granularity are
    fixed per checker.
    """

    def __init__(
        self,
        cache: Optional["SlotCache"] = None,
        *,
        business_hours: Optional[IntervalConfig] = None,
        timezone: str = CALENDAR_TIMEZONE,
        granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    ) -> None:
        if granularity_minutes <= 0:
            raise ValueError(f"granularity_minutes must be positive, got {granularity_minutes}")
        self.cache = cache
        self.business_hours = business_hours
        self.timezone = timezone
        self.granularity_minutes = granularity_minutes

    @classmethod
    def from_config(
        cls,
        config: "EngineConfig",
        cache: Optional["SlotCache"] = None,
    ) -> "AvailabilityChecker":
        return cls(
            cache,
            business_hours=config.business_hours,
            timezone=config.timezone,
            granularity_minutes=config.slot_granularity_minutes,
        )

    def check(
        self,
        day: DateLike,
        time_of_day: str,
        duration_minutes: int,
        bookings: Sequence[BookingSlot],
        interval: Optional[IntervalConfig] = None,
        resource_id: Optional[str] = None,
        *,
        resource_available: bool = True,
        generation: Optional["Generation"] = None,
    ) -> AvailabilityResult:
        """
        Availability of one slot, served from the cache when possible.

        A resource that is off (``resource_available=False``) is reported
        straight away and never cached, since that state lives outside the
        cache key.

        Pass the ``generation`` taken before ``bookings`` were read when they
        came from elsewhere; otherwise it is taken here. An answer computed
        across an invalidation is returned but not stored.
        """
        # Parse before touching the cache so bad input raises ParseError, not a fault.
        date_key(day)
        parse_time_of_day(time_of_day)

        if not resource_available:
            return AvailabilityResult.blocked(
                UnavailableReason.RESOURCE_UNAVAILABLE,
                f"Resource {resource_id or 'any'} is unavailable",
            )

        if self.cache is not None:
            if generation is None:
                generation = self.cache.generation(day)
            cached = self.cache.get_availability(
                day, time_of_day, duration_minutes, resource_id, interval, self.business_hours
            )
            if cached is not None:
                logger.debug("Availability cache hit for %s %s", day, time_of_day)
                return cached

        result = check_availability(
            day,
            time_of_day,
            duration_minutes,
            bookings,
            interval,
            resource_id,
            business_hours=self.business_hours,
            tz=self.timezone,
        )

        if self.cache is not None:
            self.cache.set_availability(
                day,
                time_of_day,
                duration_minutes,
                result,
                resource_id,
                interval,
                self.business_hours,
                generation=generation,
            )

        return result

    def blocked_slots(self, day: DateLike, bookings: Sequence[BookingSlot]) -> FrozenSet[str]:
        """Labels occupied by the day's bookings, memoized per booking list."""
        date_key(day)

        generation = None
        if self.cache is not None:
            generation = self.cache.generation(day)
            cached = self.cache.get_blocked_slots(day, bookings, self.granularity_minutes)
            if cached is not None:
                return cached

        labels = blocked_slots(bookings, self.granularity_minutes)

        if self.cache is not None:
            self.cache.set_blocked_slots(
                day, bookings, self.granularity_minutes, labels, generation=generation
            )

        return labels

    def interval_blocked_slots(self, day: DateLike, interval: IntervalConfig) -> FrozenSet[str]:
        return interval_blocked_slots(interval, day, self.granularity_minutes, self.timezone)

    def unavailable_slots(
        self,
        day: DateLike,
        bookings: Sequence[BookingSlot],
        interval: Optional[IntervalConfig] = None,
    ) -> FrozenSet[str]:
        """Every label blocked either by a booking or by the interval."""
        labels = self.blocked_slots(day, bookings)
        if interval is not None:
            labels = labels | self.interval_blocked_slots(day, interval)
        return labels
