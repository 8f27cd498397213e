"""Rebuild per-day tracking sessions from the raw enable/disable event log.

The aggregator is a single synchronous pass over an already fetched event
list. Input must be grouped by ``user_id`` and ascending by timestamp within
each group; events are never re-sorted here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Executor
from dataclasses import fields, replace
from datetime import date, datetime
from functools import partial
from typing import Any, Union
from zoneinfo import ZoneInfo

from .models import (
    AggregatedRecord,
    AggregationResult,
    EventType,
    OpenSession,
    ReplayStats,
    Session,
    TrackingEvent,
)
from .timeutil import duration_ms, end_of_local_day, local_day, parse_iso_utc, utc_now

BucketKey = tuple[str, date]
RawEvent = Union[TrackingEvent, Mapping[str, Any]]


class MalformedEventError(ValueError):
    """Raised for an event-log row that cannot become a TrackingEvent."""


class InputOrderingError(ValueError):
    """Raised in strict mode when events are not grouped by user and time-ordered."""


def parse_event(row: RawEvent) -> TrackingEvent:
    if isinstance(row, TrackingEvent):
        if not isinstance(row.timestamp, datetime):
            raise MalformedEventError(f"unparseable timestamp {row.timestamp!r}")
        try:
            event_type = EventType(row.event_type)
        except ValueError as exc:
            raise MalformedEventError(f"unknown event type {row.event_type!r}") from exc
        return replace(row, event_type=event_type, timestamp=parse_iso_utc(row.timestamp))

    user_id = row.get("user_id")
    if user_id is None or not str(user_id).strip():
        raise MalformedEventError("event has no user_id")

    raw_type = row.get("event_type")
    try:
        event_type = EventType(raw_type)
    except ValueError as exc:
        raise MalformedEventError(f"unknown event type {raw_type!r}") from exc

    raw_timestamp = row.get("created_at")
    try:
        timestamp = parse_iso_utc(raw_timestamp)
    except (TypeError, ValueError) as exc:
        raise MalformedEventError(f"unparseable timestamp {raw_timestamp!r}") from exc
    if timestamp is None:
        raise MalformedEventError("event has no timestamp")

    return TrackingEvent(
        user_id=str(user_id),
        event_type=event_type,
        timestamp=timestamp,
        user_name=row.get("user_name"),
        user_email=row.get("user_email"),
        user_role=row.get("user_role"),
    )


def partition_by_user(events: Iterable[RawEvent]) -> dict[str, list[RawEvent]]:
    """Split events into per-user lists, keeping each user's relative order."""
    partitions: dict[str, list[RawEvent]] = {}
    for event in events:
        if isinstance(event, TrackingEvent):
            user_id = event.user_id
        else:
            user_id = event.get("user_id")
        partitions.setdefault("" if user_id is None else str(user_id), []).append(event)
    return partitions


class _Replay:
    """Accumulator state for one aggregation call."""

    def __init__(self, tz: ZoneInfo, now: datetime, logger: logging.Logger, strict_ordering: bool) -> None:
        self.tz = tz
        self.now = now
        self.today = local_day(now, tz)
        self.logger = logger
        self.strict_ordering = strict_ordering

        self.records: dict[BucketKey, AggregatedRecord] = {}
        self.open_sessions: dict[str, OpenSession] = {}
        self.stats = ReplayStats()
        self.current_key: BucketKey | None = None

        self._current_user: str | None = None
        self._last_seen: dict[str, datetime] = {}

    def feed(self, raw: RawEvent) -> None:
        self.stats.events += 1
        try:
            event = parse_event(raw)
        except MalformedEventError as exc:
            self.stats.malformed += 1
            self.logger.warning("Skipping malformed tracking event: %s", exc)
            return

        self._check_order(event)

        key = (event.user_id, local_day(event.timestamp, self.tz))
        if key != self.current_key:
            if self.current_key is not None:
                self._finalize(self.current_key)
            self.current_key = key

        record = self._bucket(key, event)
        if event.event_type is EventType.ENABLED:
            self._enable(record, event, key)
        else:
            self._disable(record, event)

    def finish(self) -> AggregationResult:
        if self.current_key is not None:
            self._finalize(self.current_key)

        self.logger.debug(
            "Replayed %d events into %d day buckets (malformed=%d orphans=%d duplicates=%d misordered=%d)",
            self.stats.events,
            len(self.records),
            self.stats.malformed,
            self.stats.orphan_closes,
            self.stats.duplicate_enables,
            self.stats.ordering_violations,
        )
        return AggregationResult(records=list(self.records.values()), stats=self.stats)

    def _check_order(self, event: TrackingEvent) -> None:
        previous = self._last_seen.get(event.user_id)
        violation = None
        if previous is not None and event.user_id != self._current_user:
            violation = f"events for user {event.user_id} are not contiguous"
        elif previous is not None and event.timestamp < previous:
            violation = (
                f"event for user {event.user_id} at {event.timestamp.isoformat()} "
                f"precedes {previous.isoformat()}"
            )

        self._current_user = event.user_id
        self._last_seen[event.user_id] = event.timestamp

        if violation is None:
            return
        self.stats.ordering_violations += 1
        if self.strict_ordering:
            raise InputOrderingError(violation)
        self.logger.warning("Tracking events out of order, totals may be wrong: %s", violation)

    def _bucket(self, key: BucketKey, event: TrackingEvent) -> AggregatedRecord:
        record = self.records.get(key)
        if record is None:
            record = AggregatedRecord(
                user_id=event.user_id,
                date=key[1],
                user_name=event.user_name,
                user_email=event.user_email,
                user_role=event.user_role,
            )
            self.records[key] = record
        return record

    def _enable(self, record: AggregatedRecord, event: TrackingEvent, key: BucketKey) -> None:
        if event.user_id in self.open_sessions:
            self.stats.duplicate_enables += 1
            self.logger.debug("Ignoring duplicate enable for user %s", event.user_id)
            return

        self.open_sessions[event.user_id] = OpenSession(
            user_id=event.user_id,
            started_at_utc=event.timestamp,
            bucket_key=key,
        )
        record.session_count += 1
        if record.first_enable is None:
            record.first_enable = event.timestamp

    def _disable(self, record: AggregatedRecord, event: TrackingEvent) -> None:
        session = self.open_sessions.pop(event.user_id, None)
        if session is None:
            self.stats.orphan_closes += 1
            self.logger.debug("Ignoring disable without open session user=%s", event.user_id)
            return

        record.add_session(
            Session(
                start_time=session.started_at_utc,
                end_time=event.timestamp,
                duration_ms=duration_ms(session.started_at_utc, event.timestamp),
            )
        )
        record.last_disable = event.timestamp

    def _finalize(self, key: BucketKey) -> None:
        session = self.open_sessions.get(key[0])
        if session is None or session.bucket_key != key:
            return

        # The slot is dropped here; a session left open is never carried into the next day.
        del self.open_sessions[key[0]]
        record = self.records[key]

        if record.date == self.today:
            end = self.now
            active = True
            record.is_active = True
        else:
            end = end_of_local_day(record.date, self.tz)
            active = False

        record.add_session(
            Session(
                start_time=session.started_at_utc,
                end_time=end,
                duration_ms=duration_ms(session.started_at_utc, end),
                active=active,
            )
        )


class ActivityAggregator:
    def __init__(
        self,
        tz: ZoneInfo | None = None,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
        strict_ordering: bool = False,
    ) -> None:
        self.tz = tz or ZoneInfo("UTC")
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.strict_ordering = strict_ordering

    def aggregate(self, events: Iterable[RawEvent]) -> AggregationResult:
        return self._replay(events, self.clock())

    def aggregate_by_user(
        self,
        events: Iterable[RawEvent],
        executor: Executor | None = None,
    ) -> AggregationResult:
        """Replay each user's events independently and merge the buckets.

        Users never share buckets, so the partitions may run on an executor.
        """
        partitions = partition_by_user(events)
        replay = partial(self._replay, now=self.clock())
        results = executor.map(replay, partitions.values()) if executor else map(replay, partitions.values())

        records: list[AggregatedRecord] = []
        stats = ReplayStats()
        for result in results:
            records.extend(result.records)
            for item in fields(ReplayStats):
                setattr(stats, item.name, getattr(stats, item.name) + getattr(result.stats, item.name))
        return AggregationResult(records=records, stats=stats)

    def _replay(self, events: Iterable[RawEvent], now: datetime) -> AggregationResult:
        replay = _Replay(self.tz, now, self.logger, self.strict_ordering)
        for event in events:
            replay.feed(event)
        return replay.finish()
