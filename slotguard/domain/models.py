"""
Domain models for bookings, blocking intervals and availability answers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pendulum import DateTime

from .exceptions import ConfigurationError, ParseError
from .overlap import overlaps
from .time_arithmetic import (
    CALENDAR_TIMEZONE,
    DateLike,
    end_of,
    format_time,
    parse_time_of_day,
    to_instant,
)


@dataclass(frozen=True)
class TimeRange:
    """Half-open span [start, end) of one calendar day; start < end."""
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def overlaps(self, other: "TimeRange") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def __str__(self) -> str:
        return f"{self.start.to_date_string()} {format_time(self.start)}-{format_time(self.end)}"


@dataclass(frozen=True)
class BookingSlot:
    """
    One occupied appointment handed to the engine by the persistence layer.

    ``resource_id`` is the staff member the appointment is booked with; a
    booking without one is unscoped and competes with every resource.
    Instances are never edited: a cancellation or reschedule produces a new
    booking list for the day.
    """
    range: TimeRange
    service_id: str
    duration_minutes: int
    resource_id: Optional[str] = None

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {self.duration_minutes}")
        if end_of(self.range.start, self.duration_minutes) != self.range.end:
            raise ValueError(
                f"Booking range {self.range} does not match a duration of "
                f"{self.duration_minutes} minutes"
            )

    @classmethod
    def create(
        cls,
        day: DateLike,
        start_time: str,
        duration_minutes: int,
        service_id: str,
        resource_id: Optional[str] = None,
        tz: str = CALENDAR_TIMEZONE,
    ) -> "BookingSlot":
        """Build a booking from civil inputs ("2025-02-07", "14:00", 90, ...)."""
        start = to_instant(day, start_time, tz)
        return cls(
            range=TimeRange(start=start, end=end_of(start, duration_minutes)),
            service_id=service_id,
            duration_minutes=duration_minutes,
            resource_id=resource_id,
        )

    @property
    def start(self) -> DateTime:
        return self.range.start

    @property
    def end(self) -> DateTime:
        return self.range.end


@dataclass(frozen=True)
class IntervalConfig:
    """
    A daily recurring block (e.g. lunch) that applies to every resource.

    Validated once when the configuration is built; a malformed or
    inverted interval raises ConfigurationError.
    """
    start_time: str
    end_time: str

    def __post_init__(self):
        try:
            parse_time_of_day(self.start_time)
            parse_time_of_day(self.end_time)
        except ParseError as exc:
            raise ConfigurationError(f"Invalid interval: {exc}") from exc

        # Zero-padded "HH:mm" strings sort chronologically.
        if self.start_time >= self.end_time:
            raise ConfigurationError(
                f"Interval start {self.start_time} must be before end {self.end_time}"
            )

    def label(self) -> str:
        return f"{self.start_time}-{self.end_time}"

    def to_range(self, day: DateLike, tz: str = CALENDAR_TIMEZONE) -> TimeRange:
        """Resolve the interval to concrete instants on ``day``."""
        return TimeRange(
            start=to_instant(day, self.start_time, tz),
            end=to_instant(day, self.end_time, tz),
        )


class UnavailableReason(str, Enum):
    """Why a slot cannot be booked."""
    OCCUPIED = "occupied"
    INTERVAL = "interval"
    INSUFFICIENT_TIME = "insufficient_time"
    OUTSIDE_HOURS = "outside_hours"
    RESOURCE_UNAVAILABLE = "resource_unavailable"


@dataclass(frozen=True)
class AvailabilityResult:
    """
    Answer to "can this slot be booked?".

    Invariant: ``reason`` and ``message`` are both set exactly when
    ``available`` is False, since the UI renders them directly.
    """
    available: bool
    reason: Optional[UnavailableReason] = None
    message: Optional[str] = None
    occupied_until: Optional[str] = None

    def __post_init__(self):
        if self.available:
            if self.reason is not None or self.occupied_until is not None:
                raise ValueError("An available result cannot carry a reason")
        elif self.reason is None or not self.message:
            raise ValueError("An unavailable result needs both a reason and a message")

    @classmethod
    def free(cls) -> "AvailabilityResult":
        return cls(available=True)

    @classmethod
    def blocked(
        cls,
        reason: UnavailableReason,
        message: str,
        occupied_until: Optional[DateTime] = None,
    ) -> "AvailabilityResult":
        return cls(
            available=False,
            reason=reason,
            message=message,
            occupied_until=format_time(occupied_until) if occupied_until is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation for rendering and JSON output."""
        data: Dict[str, Any] = {"available": self.available}
        if self.reason is not None:
            data["reason"] = self.reason.value
        if self.message is not None:
            data["message"] = self.message
        if self.occupied_until is not None:
            data["occupied_until"] = self.occupied_until
        return data
