"""
Adapters layer - Booking sources backed by external storage.
"""

from .yaml_booking_source import YamlBookingSource

__all__ = ["YamlBookingSource"]
