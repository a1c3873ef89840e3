"""
ingest/intervals.py

Small time-window helpers shared by discovery and the OCCTO consolidation.

Conventions
-----------
- All helpers require timezone-aware datetimes and preserve the tzinfo they
  are given; callers decide whether they work in UTC or JST.
- Windows are half-open: [start, end).
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, tzinfo

from dateutil import parser as dtp

from .const import JST


def parse_datetime(s: str, default_tz: tzinfo = JST) -> datetime:
    """Parse an ISO-8601 string into an aware datetime.

    Strings without an offset (e.g. "2024-06-03" or "2024-06-03T09:00") are
    read as wall-clock time in `default_tz`, JST unless told otherwise.
    """
    dt = dtp.isoparse(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz)
    return dt


def start_of_most_recent_half_hour(dt: datetime) -> datetime:
    """Floor `dt` to the latest :00 or :30 boundary, keeping its zone.

    Example:
        >>> start_of_most_recent_half_hour(
        ...     datetime(2022, 1, 1, 12, 46, 56, 789000, tzinfo=JST))
        datetime(2022, 1, 1, 12, 30, tzinfo=JST)
    """
    minute = 30 if dt.minute >= 30 else 0
    return dt.replace(minute=minute, second=0, microsecond=0)


def split_interval(
    start: datetime, end: datetime, step: timedelta
) -> list[tuple[datetime, datetime]]:
    """Split [start, end) into consecutive windows of length `step`.

    The final window is truncated at `end` when the range is not an exact
    multiple of `step`.

    Raises:
        ValueError: If `step` is not positive.
    """
    if step <= timedelta(0):
        raise ValueError("step must be positive")
    windows = []
    cursor = start
    while cursor < end:
        nxt = min(cursor + step, end)
        windows.append((cursor, nxt))
        cursor = nxt
    return windows


def month_starts(first: datetime, last: datetime) -> Iterator[datetime]:
    """Yield the first instant of every month from `first` to `last` inclusive."""
    cursor = first.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    stop = last.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    while cursor <= stop:
        yield cursor
        if cursor.month == 12:
            cursor = cursor.replace(year=cursor.year + 1, month=1)
        else:
            cursor = cursor.replace(month=cursor.month + 1)
