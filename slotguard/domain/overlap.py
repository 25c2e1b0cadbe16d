"""
Half-open interval overlap test.
"""

from pendulum import DateTime


def overlaps(a_start: DateTime, a_end: DateTime, b_start: DateTime, b_end: DateTime) -> bool:
    """
    Return True if [a_start, a_end) and [b_start, b_end) intersect.

    Ranges that only touch at a boundary (``a_end == b_start``) do not
    overlap, so back-to-back appointments are allowed.
    """
    return a_start < b_end and b_start < a_end
