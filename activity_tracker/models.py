from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class EventType(str, Enum):
    ENABLED = "tracking_enabled"
    DISABLED = "tracking_disabled"


@dataclass(frozen=True, slots=True)
class TrackingEvent:
    user_id: str
    event_type: EventType
    timestamp: datetime
    # Display fields ride along for output only.
    user_name: str | None = None
    user_email: str | None = None
    user_role: str | None = None


@dataclass(frozen=True, slots=True)
class OpenSession:
    user_id: str
    started_at_utc: datetime
    bucket_key: tuple[str, date]


@dataclass(frozen=True, slots=True)
class Session:
    start_time: datetime
    end_time: datetime | None
    duration_ms: int
    # True for a session virtually closed at "now" because it is still running today.
    active: bool = False


@dataclass(slots=True)
class AggregatedRecord:
    user_id: str
    date: date
    user_name: str | None = None
    user_email: str | None = None
    user_role: str | None = None
    total_duration_ms: int = 0
    session_count: int = 0
    is_active: bool = False
    first_enable: datetime | None = None
    last_disable: datetime | None = None
    sessions: list[Session] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.user_id}_{self.date.isoformat()}"

    @property
    def display_name(self) -> str:
        return self.user_name or f"User {self.user_id}"

    def add_session(self, session: Session) -> None:
        self.sessions.append(session)
        self.total_duration_ms += session.duration_ms


@dataclass(slots=True)
class ReplayStats:
    events: int = 0
    malformed: int = 0
    orphan_closes: int = 0
    duplicate_enables: int = 0
    ordering_violations: int = 0


@dataclass(frozen=True, slots=True)
class AggregationResult:
    records: list[AggregatedRecord]
    stats: ReplayStats


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int
    limit: int
    total: int
    pages: int


@dataclass(frozen=True, slots=True)
class ActivityPage:
    records: list[AggregatedRecord]
    pagination: Pagination


@dataclass(frozen=True, slots=True)
class UserRecord:
    user_id: str
    name: str | None
    email: str | None
    role_name: str | None
    time_tracking_enabled: bool


@dataclass(frozen=True, slots=True)
class LoginLog:
    id: str
    user_id: str
    event_type: str
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class LoginLogPage:
    logs: list[LoginLog]
    pagination: Pagination
