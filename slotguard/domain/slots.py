"""
Slot enumeration on a fixed granularity grid.

A slot label is the "HH:mm" rendering of a grid point. An appointment
occupies its start label and every following label up to and including the
one at its end instant, which keeps a new appointment from starting in the
middle of a running service.
"""

from typing import FrozenSet, Iterable, List

from pendulum import DateTime

from .models import BookingSlot, IntervalConfig
from .time_arithmetic import (
    CALENDAR_TIMEZONE,
    DateLike,
    add_minutes,
    end_of,
    format_time,
    to_instant,
)


DEFAULT_GRANULARITY_MINUTES = 30


def _check_granularity(granularity_minutes: int) -> None:
    if granularity_minutes <= 0:
        raise ValueError(f"Slot granularity must be positive, got {granularity_minutes}")


def occupied_slots(
    start: DateTime,
    duration_minutes: int,
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
) -> List[str]:
    """
    List the slot labels an appointment occupies.

    Example (90 minutes at 14:00, 30 minute grid):
        ["14:00", "14:30", "15:00", "15:30"]
    """
    _check_granularity(granularity_minutes)
    if duration_minutes <= 0:
        raise ValueError(f"Duration must be positive, got {duration_minutes}")

    end = end_of(start, duration_minutes)
    labels = [format_time(start)]

    cursor = start
    while cursor < end:
        cursor = add_minutes(cursor, granularity_minutes)
        if cursor <= end:
            labels.append(format_time(cursor))

    return labels


def blocked_slots(
    bookings: Iterable[BookingSlot],
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
) -> FrozenSet[str]:
    """Union of the labels occupied by every booking."""
    labels: set[str] = set()

    for booking in bookings:
        labels.update(
            occupied_slots(booking.start, booking.duration_minutes, granularity_minutes)
        )

    return frozenset(labels)


def interval_blocked_slots(
    interval: IntervalConfig,
    day: DateLike,
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    tz: str = CALENDAR_TIMEZONE,
) -> FrozenSet[str]:
    """Labels from the interval start through its end, both inclusive."""
    _check_granularity(granularity_minutes)

    window = interval.to_range(day, tz)
    labels: set[str] = set()

    cursor = window.start
    while cursor <= window.end:
        labels.add(format_time(cursor))
        cursor = add_minutes(cursor, granularity_minutes)

    return frozenset(labels)


def candidate_slots(
    opening_time: str,
    closing_time: str,
    day: DateLike,
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    tz: str = CALENDAR_TIMEZONE,
) -> List[DateTime]:
    """Grid start instants from opening (inclusive) to closing (exclusive)."""
    _check_granularity(granularity_minutes)

    cursor = to_instant(day, opening_time, tz)
    closing = to_instant(day, closing_time, tz)

    starts: List[DateTime] = []
    while cursor < closing:
        starts.append(cursor)
        cursor = add_minutes(cursor, granularity_minutes)

    return starts
