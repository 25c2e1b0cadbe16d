"""
Conflict rules between bookings and against the daily blocking interval.
"""

from typing import Optional

from pendulum import DateTime

from .models import BookingSlot, IntervalConfig, TimeRange
from .overlap import overlaps
from .time_arithmetic import CALENDAR_TIMEZONE, DateLike, end_of


def conflicts(a: BookingSlot, b: BookingSlot) -> bool:
    """
    Decide whether two bookings compete for the same time.

    Bookings scoped to two different resources never conflict. When either
    side is unscoped it competes with everyone, so only the times matter.
    """
    if a.resource_id and b.resource_id and a.resource_id != b.resource_id:
        return False

    return overlaps(a.start, a.end, b.start, b.end)


def conflicts_with_interval(
    time_range: TimeRange,
    interval: IntervalConfig,
    day: DateLike,
    tz: str = CALENDAR_TIMEZONE,
) -> bool:
    """Whether a range overlaps the interval on ``day``, for any resource."""
    return time_range.overlaps(interval.to_range(day, tz))


def is_time_in_interval(
    instant: DateTime,
    interval: IntervalConfig,
    day: DateLike,
    tz: str = CALENDAR_TIMEZONE,
) -> bool:
    """Whether an instant falls inside the interval, bounds included."""
    window = interval.to_range(day, tz)
    return window.start <= instant <= window.end


def has_enough_time_for_service(
    slot_start: DateTime,
    duration_minutes: int,
    next_booking_start: Optional[DateTime] = None,
    interval: Optional[IntervalConfig] = None,
    day: Optional[DateLike] = None,
    tz: str = CALENDAR_TIMEZONE,
) -> bool:
    """
    Check that a service starting at ``slot_start`` finishes in time.

    It must end no later than the next booking starts and must not run into
    the interval (only checked when both ``interval`` and ``day`` are given).
    """
    service_end = end_of(slot_start, duration_minutes)

    if next_booking_start is not None and service_end > next_booking_start:
        return False

    if interval is not None and day is not None:
        service_range = TimeRange(start=slot_start, end=service_end)
        if conflicts_with_interval(service_range, interval, day, tz):
            return False

    return True
