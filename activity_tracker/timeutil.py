from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

END_OF_DAY = time(23, 59, 59, 999000)
ONE_MS = timedelta(milliseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso_utc(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp (or pass a datetime through) and normalize to UTC."""
    if value is None or value == "":
        return None

    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).strip())
    if parsed.tzinfo is None:
        # SQLite hands back naive text for CURRENT_TIMESTAMP defaults; those are UTC.
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a timezone-aware datetime to UTC for storage."""
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


def local_day(value: datetime, tz: ZoneInfo) -> date:
    return value.astimezone(tz).date()


def end_of_local_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, END_OF_DAY, tzinfo=tz).astimezone(timezone.utc)


def midnight_utc_for_local_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def duration_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds between two instants, never negative."""
    return max(0, (end - start) // ONE_MS)
