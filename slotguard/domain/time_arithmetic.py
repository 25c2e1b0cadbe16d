"""
Civil-time helpers shared by the whole engine.

Every instant the engine handles is a ``pendulum.DateTime`` in one fixed,
explicitly named zone (``CALENDAR_TIMEZONE`` unless the caller passes another).
The ambient process timezone is never consulted and no conversion between
zones takes place: callers supply dates and "HH:mm" strings that already
belong to that single calendar.
"""

from __future__ import annotations

import re
from datetime import date as date_type
from datetime import datetime
from typing import Union

import pendulum
from pendulum import Date, DateTime

from .exceptions import ParseError


CALENDAR_TIMEZONE = "UTC"

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

DateLike = Union[str, date_type]


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Split a strict "HH:mm" string into (hour, minute)."""
    if not isinstance(value, str):
        raise ParseError(f"Time of day must be a 'HH:mm' string, got {value!r}")

    match = TIME_OF_DAY_PATTERN.match(value)
    if match is None:
        raise ParseError(f"Invalid time of day: {value!r} (expected 'HH:mm')")

    return int(match.group(1)), int(match.group(2))


def parse_date(value: DateLike) -> Date:
    """
    Normalise a calendar date.

    Accepts an ISO ``YYYY-MM-DD`` string or any ``date``/``datetime``
    instance (only the calendar part of a datetime is kept).
    """
    if isinstance(value, datetime):
        return pendulum.date(value.year, value.month, value.day)

    if isinstance(value, date_type):
        return pendulum.date(value.year, value.month, value.day)

    if not isinstance(value, str):
        raise ParseError(f"Date must be a 'YYYY-MM-DD' string, got {value!r}")

    try:
        parsed = pendulum.parse(value.strip(), exact=True)
    except (ValueError, TypeError) as exc:
        raise ParseError(f"Invalid date: {value!r}") from exc

    if isinstance(parsed, DateTime) or not isinstance(parsed, Date):
        raise ParseError(f"Invalid date: {value!r} (expected 'YYYY-MM-DD')")

    return parsed


def date_key(value: DateLike) -> str:
    """Return the canonical ``YYYY-MM-DD`` form of a date."""
    return parse_date(value).isoformat()


def to_instant(day: DateLike, time_of_day: str, tz: str = CALENDAR_TIMEZONE) -> DateTime:
    """Combine a calendar date and a "HH:mm" string into an instant."""
    calendar_day = parse_date(day)
    hour, minute = parse_time_of_day(time_of_day)

    return pendulum.datetime(
        calendar_day.year,
        calendar_day.month,
        calendar_day.day,
        hour,
        minute,
        tz=tz,
    )


def add_minutes(instant: DateTime, minutes: int) -> DateTime:
    return instant.add(minutes=minutes)


def end_of(start: DateTime, duration_minutes: int) -> DateTime:
    """End instant of an appointment starting at ``start``."""
    return add_minutes(start, duration_minutes)


def format_time(instant: DateTime) -> str:
    return instant.format("HH:mm")


def minutes_to_time_of_day(total_minutes: int) -> str:
    """Render minutes since midnight as "HH:mm" (YAML reads 14:00 as 840)."""
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"
