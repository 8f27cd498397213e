from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from activity_tracker.timeutil import duration_ms, end_of_local_day, local_day, parse_iso_utc, to_utc


def test_parse_iso_utc() -> None:
    assert parse_iso_utc(None) is None
    assert parse_iso_utc("") is None
    assert parse_iso_utc("2026-02-01T12:00:00") == datetime(2026, 2, 1, 12, tzinfo=timezone.utc)
    assert parse_iso_utc("2026-02-01T07:00:00-05:00") == datetime(2026, 2, 1, 12, tzinfo=timezone.utc)
    assert parse_iso_utc("2026-02-01T07:00:00-05:00").tzinfo == timezone.utc

    with pytest.raises(ValueError):
        parse_iso_utc("yesterday")


def test_to_utc_rejects_naive() -> None:
    with pytest.raises(ValueError):
        to_utc(datetime(2026, 2, 1, 12))


def test_duration_ms_floors_and_never_negative() -> None:
    start = datetime(2026, 2, 1, 12, tzinfo=timezone.utc)

    assert duration_ms(start, start + timedelta(seconds=90, microseconds=1500)) == 90_001
    assert duration_ms(start, start - timedelta(minutes=5)) == 0


def test_local_day_boundaries() -> None:
    tz = ZoneInfo("America/New_York")
    late_evening = datetime(2026, 1, 2, 3, 30, tzinfo=timezone.utc)

    assert local_day(late_evening, tz) == date(2026, 1, 1)
    assert end_of_local_day(date(2026, 1, 1), tz) == datetime(2026, 1, 2, 4, 59, 59, 999000, tzinfo=timezone.utc)
