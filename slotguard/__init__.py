"""
slotguard - appointment slot conflict resolution with an availability cache.
"""

__version__ = "0.1.0"
