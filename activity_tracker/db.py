from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from .models import LoginLog, UserRecord
from .timeutil import parse_iso_utc, to_utc

LOG_EVENT_TYPES = ("login", "logout", "tracking_enabled", "tracking_disabled")
_EVENT_TYPE_CHECK = ", ".join(f"'{event_type}'" for event_type in LOG_EVENT_TYPES)


class Database:
    """Thin SQLite access layer for users and their tracking event log."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # users: display metadata and the current tracking toggle.
        # user_login_logs: append-only event log, instants stored as UTC ISO text.
        self._conn.executescript(
            f"""
            CREATE TABLE IF NOT EXISTS users (
              id TEXT PRIMARY KEY,
              name TEXT,
              email TEXT,
              role_name TEXT,
              time_tracking_enabled INTEGER NOT NULL DEFAULT 0,
              updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS user_login_logs (
              id TEXT PRIMARY KEY,
              user_id TEXT NOT NULL,
              event_type TEXT NOT NULL CHECK (event_type IN ({_EVENT_TYPE_CHECK})),
              ip_address TEXT,
              user_agent TEXT,
              created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_user_login_logs_user_id ON user_login_logs (user_id);
            CREATE INDEX IF NOT EXISTS idx_user_login_logs_created_at ON user_login_logs (created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_user_login_logs_user_created ON user_login_logs (user_id, created_at);
            """
        )
        self._conn.commit()

    def upsert_user(
        self,
        user_id: str,
        name: str | None = None,
        email: str | None = None,
        role_name: str | None = None,
    ) -> None:
        # None keeps the stored display value; the tracking toggle is never touched here.
        self._conn.execute(
            """
            INSERT INTO users (id, name, email, role_name)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id)
            DO UPDATE SET name=COALESCE(excluded.name, users.name),
                          email=COALESCE(excluded.email, users.email),
                          role_name=COALESCE(excluded.role_name, users.role_name)
            """,
            (user_id, name, email, role_name),
        )
        self._conn.commit()

    def get_user(self, user_id: str) -> UserRecord | None:
        row = self._conn.execute(
            "SELECT id, name, email, role_name, time_tracking_enabled FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return UserRecord(
            user_id=row["id"],
            name=row["name"],
            email=row["email"],
            role_name=row["role_name"],
            time_tracking_enabled=bool(row["time_tracking_enabled"]),
        )

    def get_tracking_enabled(self, user_id: str) -> bool | None:
        user = self.get_user(user_id)
        return None if user is None else user.time_tracking_enabled

    def set_tracking_enabled(self, user_id: str, enabled: bool, updated_at_utc: datetime) -> None:
        self._conn.execute(
            """
            INSERT INTO users (id, time_tracking_enabled, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(id)
            DO UPDATE SET time_tracking_enabled=excluded.time_tracking_enabled,
                          updated_at=excluded.updated_at
            """,
            (user_id, int(enabled), _iso(updated_at_utc)),
        )
        self._conn.commit()

    def insert_login_log(
        self,
        user_id: str,
        event_type: str,
        created_at_utc: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        log_id = str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO user_login_logs (id, user_id, event_type, ip_address, user_agent, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (log_id, user_id, event_type, ip_address, user_agent, _iso(created_at_utc)),
        )
        self._conn.commit()
        return log_id

    def fetch_tracking_events(
        self,
        *,
        user_id: str | None = None,
        event_types: Sequence[str] = ("tracking_enabled", "tracking_disabled"),
        start_utc: datetime | None = None,
        end_utc: datetime | None = None,
    ) -> list[dict]:
        """Return raw event rows joined with user display fields.

        Rows come back ordered by user, then time, then insertion order, which is
        the order the aggregator requires. ``end_utc`` is exclusive.
        """
        if not event_types:
            return []

        clauses = [f"ull.event_type IN ({', '.join('?' for _ in event_types)})"]
        params: list = list(event_types)

        if user_id:
            clauses.append("ull.user_id = ?")
            params.append(user_id)
        if start_utc is not None:
            clauses.append("ull.created_at >= ?")
            params.append(_iso(start_utc))
        if end_utc is not None:
            clauses.append("ull.created_at < ?")
            params.append(_iso(end_utc))

        rows = self._conn.execute(
            f"""
            SELECT ull.id, ull.user_id, ull.event_type, ull.created_at,
                   u.name AS user_name, u.email AS user_email, u.role_name AS user_role
            FROM user_login_logs ull
            LEFT JOIN users u ON u.id = ull.user_id
            WHERE {" AND ".join(clauses)}
            ORDER BY ull.user_id, ull.created_at ASC, ull.rowid ASC
            """,
            params,
        ).fetchall()
        return [dict(row) for row in rows]

    def list_login_logs(self, user_id: str, limit: int, offset: int) -> list[LoginLog]:
        rows = self._conn.execute(
            """
            SELECT id, user_id, event_type, ip_address, user_agent, created_at
            FROM user_login_logs
            WHERE user_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (user_id, limit, offset),
        ).fetchall()

        return [
            LoginLog(
                id=row["id"],
                user_id=row["user_id"],
                event_type=row["event_type"],
                created_at=parse_iso_utc(row["created_at"]),
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
            )
            for row in rows
        ]

    def count_login_logs(self, user_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS total FROM user_login_logs WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        return int(row["total"])


def _iso(value: datetime) -> str:
    # Fixed-width microseconds keep lexical order equal to time order.
    return to_utc(value).isoformat(timespec="microseconds")
