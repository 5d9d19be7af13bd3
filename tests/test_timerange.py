"""Tests for interval overlap, ISO weeks and date helpers."""

from datetime import date, datetime, timedelta, timezone

import pytest

from crm_scheduler.timerange import days_between, iso_week_key, local_day, overlaps, parse_datetime


def test_overlaps_is_inclusive_at_boundaries():
    """Ranges that merely touch count as overlapping."""
    jan1, jan5, jan8 = datetime(2024, 1, 1), datetime(2024, 1, 5), datetime(2024, 1, 8)
    assert overlaps(jan1, jan5, jan5, jan8) is True
    assert overlaps(jan5, jan8, jan1, jan5) is True


def test_overlaps_disjoint():
    assert overlaps(datetime(2024, 1, 1), datetime(2024, 1, 2), datetime(2024, 1, 3), datetime(2024, 1, 4)) is False
    assert overlaps(datetime(2024, 1, 3), datetime(2024, 1, 4), datetime(2024, 1, 1), datetime(2024, 1, 2)) is False


def test_overlaps_open_ended():
    """A missing end is unbounded on either side."""
    start = datetime(2024, 1, 1)
    assert overlaps(start, None, datetime(2030, 1, 1), datetime(2030, 1, 2)) is True
    assert overlaps(datetime(2030, 1, 1), datetime(2030, 1, 2), start, None) is True
    assert overlaps(start, None, start - timedelta(days=5), start - timedelta(days=1)) is False
    assert overlaps(start, None, start, None) is True


def test_iso_week_key_year_boundary():
    """ISO weeks are Thursday-anchored, so Dec 30 2024 belongs to 2025-W01."""
    assert iso_week_key(datetime(2024, 12, 30)) == (2025, 1)
    assert iso_week_key(date(2021, 1, 3)) == (2020, 53)
    assert iso_week_key(datetime(2024, 1, 1)) == iso_week_key(datetime(2024, 1, 7))
    assert iso_week_key(datetime(2024, 1, 8)) == (2024, 2)


def test_parse_datetime_variants():
    assert parse_datetime("2024-01-05T10:00:00Z") == datetime(2024, 1, 5, 10, 0)
    assert parse_datetime("2024-01-05T16:00:00+06:00") == datetime(2024, 1, 5, 10, 0)
    assert parse_datetime(date(2024, 1, 5)) == datetime(2024, 1, 5)
    aware = datetime(2024, 1, 5, 12, tzinfo=timezone(timedelta(hours=2)))
    assert parse_datetime(aware) == datetime(2024, 1, 5, 10)


def test_parse_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        parse_datetime("not a date")
    with pytest.raises(ValueError):
        parse_datetime(42)


def test_local_day_and_days_between():
    # 20:00 UTC is already the next day at UTC+6
    assert local_day(datetime(2024, 1, 1, 20), 6) == date(2024, 1, 2)
    assert local_day(datetime(2024, 1, 1, 17), 6) == date(2024, 1, 1)
    assert days_between(date(2024, 1, 30), date(2024, 2, 2)) == [
        date(2024, 1, 30),
        date(2024, 1, 31),
        date(2024, 2, 1),
        date(2024, 2, 2),
    ]
    assert days_between(date(2024, 1, 2), date(2024, 1, 1)) == []
