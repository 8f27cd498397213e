from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .reporter import MAX_PAGE_LIMIT

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    timezone: ZoneInfo
    db_path: Path
    page_limit: int
    strict_event_ordering: bool


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _required_int_env(name: str) -> int:
    value = _required_env(name)
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _timezone_from_env(name: str, default: str) -> ZoneInfo:
    tz_name = os.getenv(name, default).strip() or default
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean")


def load_config() -> Config:
    limit_raw = os.getenv("ACTIVITY_PAGE_LIMIT", "10").strip()
    try:
        page_limit = int(limit_raw)
    except ValueError as exc:
        raise ValueError("ACTIVITY_PAGE_LIMIT must be an integer") from exc

    if not 1 <= page_limit <= MAX_PAGE_LIMIT:
        raise ValueError(f"ACTIVITY_PAGE_LIMIT must be between 1 and {MAX_PAGE_LIMIT}")

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        timezone=_timezone_from_env("TIMEZONE", "UTC"),
        db_path=Path(os.getenv("ACTIVITY_DB_PATH", "activity_tracker.db").strip() or "activity_tracker.db"),
        page_limit=page_limit,
        strict_event_ordering=_bool_env("STRICT_EVENT_ORDERING", False),
    )
