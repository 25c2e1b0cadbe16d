"""
Domain-specific exception hierarchy for the slot availability engine.
"""


class SlotGuardError(Exception):
    """Base class for all application-level errors."""


class ParseError(SlotGuardError, ValueError):
    """Raised when a date or time-of-day string cannot be parsed."""


class ConfigurationError(SlotGuardError, ValueError):
    """Raised when engine configuration (e.g. a blocking interval) is invalid."""


class CacheFault(SlotGuardError):
    """Raised inside the cache layer; always recovered as a cache miss."""
