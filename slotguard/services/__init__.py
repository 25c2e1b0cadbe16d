"""
Service layer helpers that orchestrate adapters, the cache and domain logic.
"""

from .booking_calendar import BookingCalendarService, BookingSourceProtocol

__all__ = ["BookingCalendarService", "BookingSourceProtocol"]
