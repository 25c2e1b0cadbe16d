"""
Cache key derivation.

Keys are small named tuples rather than concatenated strings so that
date- and resource-scoped invalidation can compare fields exactly instead of
matching prefixes. ``render()`` gives the flat string form used for glob
invalidation and debugging.
"""

import hashlib
import json
from typing import Any, Iterable, NamedTuple, Optional

from ..domain.exceptions import CacheFault
from ..domain.models import BookingSlot, IntervalConfig
from ..domain.time_arithmetic import DateLike, date_key


ANY_RESOURCE = "any"
NO_INTERVAL = "no-interval"


class AvailabilityKey(NamedTuple):
    date: str
    time: str
    duration_minutes: int
    resource_id: Optional[str]
    config_hash: str

    def render(self) -> str:
        resource = self.resource_id or ANY_RESOURCE
        return f"{self.date}|{self.time}|{self.duration_minutes}|{resource}|{self.config_hash}"


class BlockedSlotsKey(NamedTuple):
    date: str
    bookings_hash: str
    granularity_minutes: int

    def render(self) -> str:
        return f"{self.date}|{self.bookings_hash}|{self.granularity_minutes}"


def fingerprint(payload: Any) -> str:
    """Short, stable, non-cryptographic digest of a JSON-serialisable payload."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.blake2b(encoded.encode("utf-8"), digest_size=8).hexdigest()


def _interval_payload(interval: Optional[IntervalConfig]) -> Optional[list]:
    if interval is None:
        return None
    return [interval.start_time, interval.end_time]


def _booking_payload(booking: BookingSlot) -> list:
    return [
        booking.start.isoformat(),
        booking.end.isoformat(),
        booking.resource_id,
        booking.service_id,
        booking.duration_minutes,
    ]


def config_hash(
    interval: Optional[IntervalConfig],
    business_hours: Optional[IntervalConfig] = None,
) -> str:
    """Hash of everything besides the bookings that shapes an availability answer."""
    if interval is None and business_hours is None:
        return NO_INTERVAL
    if business_hours is None:
        return fingerprint(_interval_payload(interval))
    return fingerprint(
        {"interval": _interval_payload(interval), "hours": _interval_payload(business_hours)}
    )


def availability_key(
    day: DateLike,
    time: str,
    duration_minutes: int,
    resource_id: Optional[str] = None,
    interval: Optional[IntervalConfig] = None,
    business_hours: Optional[IntervalConfig] = None,
) -> AvailabilityKey:
    try:
        return AvailabilityKey(
            date=date_key(day),
            time=str(time),
            duration_minutes=int(duration_minutes),
            resource_id=resource_id or None,
            config_hash=config_hash(interval, business_hours),
        )
    except Exception as exc:
        raise CacheFault(f"Could not derive availability key: {exc}") from exc


def blocked_slots_key(
    day: DateLike,
    bookings: Iterable[BookingSlot],
    granularity_minutes: int,
) -> BlockedSlotsKey:
    try:
        return BlockedSlotsKey(
            date=date_key(day),
            bookings_hash=fingerprint([_booking_payload(b) for b in bookings]),
            granularity_minutes=int(granularity_minutes),
        )
    except Exception as exc:
        raise CacheFault(f"Could not derive blocked-slots key: {exc}") from exc


def bookings_key(day: DateLike) -> str:
    try:
        return date_key(day)
    except Exception as exc:
        raise CacheFault(f"Could not derive bookings key: {exc}") from exc


def render_key(key: Any) -> str:
    """Flat string form of any key kind used by the cache."""
    render = getattr(key, "render", None)
    if callable(render):
        return render()
    return str(key)


def key_date(key: Any) -> Optional[str]:
    """The date a key was derived from, if it carries one."""
    if isinstance(key, (AvailabilityKey, BlockedSlotsKey)):
        return key.date
    if isinstance(key, str):
        return key
    return None
