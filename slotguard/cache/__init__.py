"""
Cache layer - TTL views over availability answers and booking lists.
"""

from .keys import AvailabilityKey, BlockedSlotsKey
from .slot_cache import CacheStats, SlotCache
from .store import CacheEntry, StoreStats, TTLStore
from .sweeper import CacheSweeper

__all__ = [
    "AvailabilityKey",
    "BlockedSlotsKey",
    "CacheEntry",
    "CacheStats",
    "CacheSweeper",
    "SlotCache",
    "StoreStats",
    "TTLStore",
]
