"""Splitting of time ranges into bounded query windows."""

from datetime import datetime, timedelta
from typing import List

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    TimeRange,
    Window,
)


def split_intervals(start: datetime, end: datetime, window: timedelta) -> List[Window]:
    """Split [start, end] into contiguous windows of `window` duration.

    The range is normalised first (reversed bounds are swapped). The last
    window is truncated to the range end, and an empty range yields no
    windows.

    Args:
        start: Range start (timezone-aware).
        end: Range end (timezone-aware).
        window: Positive window duration.

    Returns:
        Ordered list of windows covering exactly the normalised range.
    """
    if window <= timedelta(0):
        raise ValueError(f"Window size must be positive, got {window}")
    if start > end:
        start, end = end, start

    windows: List[Window] = []
    current = start
    while current < end:
        nxt = min(current + window, end)
        windows.append(Window(current, nxt))
        current = nxt
    return windows


def split_range(time_range: TimeRange, window: timedelta) -> List[Window]:
    return split_intervals(time_range.start, time_range.end, window)
