"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .availability import AvailabilityChecker, check_availability
from .conflicts import conflicts, conflicts_with_interval
from .exceptions import CacheFault, ConfigurationError, ParseError, SlotGuardError
from .models import (
    AvailabilityResult,
    BookingSlot,
    IntervalConfig,
    TimeRange,
    UnavailableReason,
)
from .overlap import overlaps
from .slots import blocked_slots, interval_blocked_slots, occupied_slots

__all__ = [
    "AvailabilityChecker",
    "AvailabilityResult",
    "BookingSlot",
    "CacheFault",
    "ConfigurationError",
    "IntervalConfig",
    "ParseError",
    "SlotGuardError",
    "TimeRange",
    "UnavailableReason",
    "blocked_slots",
    "check_availability",
    "conflicts",
    "conflicts_with_interval",
    "interval_blocked_slots",
    "occupied_slots",
    "overlaps",
]
