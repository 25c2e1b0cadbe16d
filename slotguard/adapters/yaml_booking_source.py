"""
File-backed booking source for the CLI and for local testing.

The file is YAML with a top-level ``bookings`` list:

    bookings:
      - date: "2025-02-07"
        start: "14:00"
        duration_minutes: 90
        service_id: premium-cut
        resource_id: barber-1
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..domain.exceptions import ParseError
from ..domain.models import BookingSlot
from ..domain.time_arithmetic import CALENDAR_TIMEZONE, date_key, minutes_to_time_of_day

logger = logging.getLogger(__name__)


def _time_value(raw: Any) -> str:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return minutes_to_time_of_day(raw)
    return str(raw)


class YamlBookingSource:
    """
    Booking source reading every booking from one YAML file.

    The whole file is parsed up front, so a malformed entry fails loudly at
    construction instead of silently disappearing from a day.
    """

    def __init__(self, path: Path, tz: str = CALENDAR_TIMEZONE):
        self.path = path
        self.tz = tz
        self._by_date: Dict[str, List[BookingSlot]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            raise FileNotFoundError(f"Bookings file not found: {self.path}")

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ParseError(f"Invalid YAML in {self.path}: {exc}") from exc

        entries = data.get("bookings", []) if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ParseError(f"{self.path} must contain a 'bookings' list")

        for index, entry in enumerate(entries):
            booking = self._parse_entry(index, entry)
            self._by_date.setdefault(date_key(booking.start), []).append(booking)

        logger.debug("Loaded %d bookings from %s", len(entries), self.path)

    def _parse_entry(self, index: int, entry: Any) -> BookingSlot:
        if not isinstance(entry, dict):
            raise ParseError(f"Booking #{index} in {self.path} must be a mapping")

        try:
            resource_id = entry.get("resource_id")
            return BookingSlot.create(
                day=str(entry["date"]),
                start_time=_time_value(entry["start"]),
                duration_minutes=int(entry["duration_minutes"]),
                service_id=str(entry["service_id"]),
                resource_id=str(resource_id) if resource_id is not None else None,
                tz=self.tz,
            )
        except KeyError as exc:
            raise ParseError(f"Booking #{index} in {self.path} is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Booking #{index} in {self.path} is invalid: {exc}") from exc

    async def fetch_bookings(self, day: str) -> List[BookingSlot]:
        """Return the bookings starting on ``day``."""
        return list(self._by_date.get(date_key(day), []))

    def dates(self) -> List[str]:
        return sorted(self._by_date)
