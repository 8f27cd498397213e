from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from .models import ActivityPage, AggregatedRecord, LoginLog, LoginLogPage, Pagination, Session

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100
# Discord rejects messages longer than this.
MESSAGE_LIMIT = 2000

T = TypeVar("T")


def format_duration(total_ms: int) -> str:
    """Render a millisecond duration as HH:MM:SS for consistent report output."""
    safe_seconds = max(0, int(total_ms)) // 1000
    hours, remainder = divmod(safe_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_page_params(
    page: Any,
    limit: Any,
    *,
    default_limit: int = DEFAULT_PAGE_LIMIT,
    max_limit: int = MAX_PAGE_LIMIT,
) -> tuple[int, int]:
    """Coerce raw page/limit input: page >= 1, limit within 1..max_limit."""
    page_value = max(1, _as_int(page) or 1)
    limit_value = min(max_limit, max(1, _as_int(limit) or default_limit))
    return page_value, limit_value


def rank_records(records: Iterable[AggregatedRecord]) -> list[AggregatedRecord]:
    """Most recent day first, then display name, then user id."""
    ranked = sorted(records, key=lambda item: (item.display_name.lower(), item.user_id))
    # Stable sort keeps the name order inside each day.
    ranked.sort(key=lambda item: item.date, reverse=True)
    return ranked


def make_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


def paginate(items: Sequence[T], page: int, limit: int) -> tuple[list[T], Pagination]:
    start = (page - 1) * limit
    window = list(items[start:start + limit])
    return window, make_pagination(page, limit, len(items))


def build_activity_page(records: Iterable[AggregatedRecord], page: int, limit: int) -> ActivityPage:
    window, pagination = paginate(rank_records(records), page, limit)
    return ActivityPage(records=window, pagination=pagination)


def _iso(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def session_to_dict(session: Session) -> dict:
    return {
        "startTime": _iso(session.start_time),
        # A session still running today has no end yet from the caller's point of view.
        "endTime": None if session.active else _iso(session.end_time),
        "durationMs": session.duration_ms,
    }


def record_to_dict(record: AggregatedRecord) -> dict:
    return {
        "id": record.key,
        "userId": record.user_id,
        "userName": record.user_name,
        "userEmail": record.user_email,
        "userRole": record.user_role,
        "date": record.date.isoformat(),
        "totalDurationMs": record.total_duration_ms,
        "sessionCount": record.session_count,
        "isActive": record.is_active,
        "firstEnable": _iso(record.first_enable),
        "lastDisable": _iso(record.last_disable),
        "sessions": [session_to_dict(session) for session in record.sessions],
    }


def pagination_to_dict(pagination: Pagination) -> dict:
    return {
        "page": pagination.page,
        "limit": pagination.limit,
        "total": pagination.total,
        "pages": pagination.pages,
    }


def activity_page_to_dict(activity: ActivityPage) -> dict:
    return {
        "records": [record_to_dict(record) for record in activity.records],
        "pagination": pagination_to_dict(activity.pagination),
    }


def login_log_to_dict(log: LoginLog) -> dict:
    return {
        "id": log.id,
        "eventType": log.event_type,
        "ipAddress": log.ip_address,
        "userAgent": log.user_agent,
        "createdAt": _iso(log.created_at),
    }


def login_log_page_to_dict(page: LoginLogPage) -> dict:
    return {
        "logs": [login_log_to_dict(log) for log in page.logs],
        "pagination": pagination_to_dict(page.pagination),
    }


def _truncate(content: str, limit: int = MESSAGE_LIMIT) -> str:
    if len(content) <= limit:
        return content
    return content[: limit - 3] + "..."


class Reporter:
    """Renders activity pages as chat messages in the configured timezone."""

    def __init__(self, tz: ZoneInfo) -> None:
        self.tz = tz

    def _footer(self, pagination: Pagination, noun: str) -> str:
        return f"Page {pagination.page}/{max(1, pagination.pages)} ({pagination.total} {noun})"

    def build_activity_content(self, title: str, activity: ActivityPage) -> str:
        header = f"**{title}**"
        if not activity.records:
            return f"{header}\nNo tracked activity found."

        lines = []
        for record in activity.records:
            sessions = "session" if record.session_count == 1 else "sessions"
            line = (
                f"- {record.date.isoformat()} | {record.display_name}: "
                f"`{format_duration(record.total_duration_ms)}` ({record.session_count} {sessions})"
            )
            if record.is_active:
                line += " - tracking now"
            lines.append(line)

        body = "\n".join(lines)
        return _truncate(f"{header}\n{body}\n{self._footer(activity.pagination, 'day records')}")

    def build_login_log_content(self, page: LoginLogPage) -> str:
        header = "**Your tracking log**"
        if not page.logs:
            return f"{header}\nNo events recorded yet."

        lines = [
            f"- {log.created_at.astimezone(self.tz).strftime('%Y-%m-%d %H:%M:%S')}: {log.event_type}"
            for log in page.logs
        ]
        body = "\n".join(lines)
        return _truncate(f"{header}\n{body}\n{self._footer(page.pagination, 'events')}")
