"""Interval overlap tests, ISO week bucketing and timezone helpers."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple


def overlaps(
    a_start: datetime,
    a_end: Optional[datetime],
    b_start: datetime,
    b_end: Optional[datetime],
) -> bool:
    """
    Check whether two intervals overlap.

    A missing end means the interval is open-ended. Bounds are inclusive:
    intervals that merely touch are considered overlapping.
    """
    if b_end is not None and a_start > b_end:
        return False
    if a_end is not None and b_start > a_end:
        return False
    return True


def iso_week_key(value: datetime | date) -> Tuple[int, int]:
    """Return the ISO 8601 (year, week) bucket of a date (Thursday-anchored)."""
    year, week, _ = value.isocalendar()
    return year, week


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or datetime into naive UTC."""
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_naive_utc(datetime.fromisoformat(text))
    raise ValueError(f"not a datetime: {value!r}")


def local_day(value: datetime, utc_offset_hours: int) -> date:
    """Calendar day of a naive UTC timestamp in a fixed-offset local zone."""
    return (value + timedelta(hours=utc_offset_hours)).date()


def days_between(start: date, end: date) -> List[date]:
    """All calendar days from start to end inclusive."""
    days = []
    cursor = start
    while cursor <= end:
        days.append(cursor)
        cursor += timedelta(days=1)
    return days
