from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from .aggregator import ActivityAggregator
from .db import Database
from .models import ActivityPage, EventType, LoginLogPage
from .reporter import DEFAULT_PAGE_LIMIT, build_activity_page, make_pagination, normalize_page_params
from .timeutil import midnight_utc_for_local_day, utc_now

LOGIN_LOG_PAGE_LIMIT = 20


class ActivityLogRetrievalError(RuntimeError):
    """The event log could not be read, so nothing was aggregated."""


@dataclass(frozen=True, slots=True)
class ActivityQuery:
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    user_id: str | None = None
    event_type: EventType | None = None
    # Inclusive calendar days in the tracker's timezone.
    start_date: date | None = None
    end_date: date | None = None


class TimeTracker:
    def __init__(
        self,
        db: Database,
        tz: ZoneInfo,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
        strict_ordering: bool = False,
    ) -> None:
        self.db = db
        self.tz = tz
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.aggregator = ActivityAggregator(tz=tz, clock=clock, strict_ordering=strict_ordering)

    def is_tracking_enabled(self, user_id: str) -> bool:
        # Users nobody has seen toggle yet have no open session in the log.
        return bool(self.db.get_tracking_enabled(user_id))

    def set_tracking_enabled(
        self,
        user_id: str,
        enabled: bool,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        """Persist the toggle; log an event only when the value actually changes."""
        current = self.is_tracking_enabled(user_id)
        self.db.set_tracking_enabled(user_id, enabled, self.clock())

        if current == enabled:
            self.logger.debug("Tracking already %s for user %s", "on" if enabled else "off", user_id)
            return False

        event_type = EventType.ENABLED if enabled else EventType.DISABLED
        self.record_event(user_id, event_type.value, ip_address=ip_address, user_agent=user_agent)
        return True

    def record_event(
        self,
        user_id: str,
        event_type: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        # A lost log row must not fail the toggle that triggered it.
        try:
            self.db.insert_login_log(user_id, event_type, self.clock(), ip_address=ip_address, user_agent=user_agent)
        except sqlite3.Error:
            self.logger.exception("Failed to record %s event for user %s", event_type, user_id)
            return False
        return True

    def get_activity_logs(self, query: ActivityQuery) -> ActivityPage:
        page, limit = normalize_page_params(query.page, query.limit)

        if query.event_type is None:
            event_types = (EventType.ENABLED.value, EventType.DISABLED.value)
        else:
            event_types = (EventType(query.event_type).value,)

        start_utc = None
        if query.start_date is not None:
            start_utc = midnight_utc_for_local_day(query.start_date, self.tz)
        end_utc = None
        if query.end_date is not None:
            end_utc = midnight_utc_for_local_day(query.end_date + timedelta(days=1), self.tz)

        try:
            rows = self.db.fetch_tracking_events(
                user_id=query.user_id,
                event_types=event_types,
                start_utc=start_utc,
                end_utc=end_utc,
            )
        except sqlite3.Error as exc:
            raise ActivityLogRetrievalError("Failed to retrieve activity logs") from exc

        result = self.aggregator.aggregate(rows)
        return build_activity_page(result.records, page, limit)

    def get_my_activity(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> ActivityPage:
        if not user_id:
            raise ValueError("user_id is required for the current-user activity view")
        return self.get_activity_logs(
            ActivityQuery(page=page, limit=limit, user_id=user_id, start_date=start_date, end_date=end_date)
        )

    def get_login_logs(self, user_id: str, *, page: int = 1, limit: int = LOGIN_LOG_PAGE_LIMIT) -> LoginLogPage:
        page, limit = normalize_page_params(page, limit, default_limit=LOGIN_LOG_PAGE_LIMIT)
        try:
            logs = self.db.list_login_logs(user_id, limit=limit, offset=(page - 1) * limit)
            total = self.db.count_login_logs(user_id)
        except sqlite3.Error as exc:
            raise ActivityLogRetrievalError("Failed to get login logs") from exc
        return LoginLogPage(logs=logs, pagination=make_pagination(page, limit, total))
