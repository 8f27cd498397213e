from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from activity_tracker.models import ActivityPage, AggregatedRecord, LoginLog, LoginLogPage, Session
from activity_tracker.reporter import (
    MESSAGE_LIMIT,
    Reporter,
    activity_page_to_dict,
    build_activity_page,
    format_duration,
    make_pagination,
    normalize_page_params,
    rank_records,
    record_to_dict,
)

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def test_format_duration_hh_mm_ss() -> None:
    assert format_duration(0) == "00:00:00"
    assert format_duration(999) == "00:00:00"
    assert format_duration(3_661_000) == "01:01:01"
    assert format_duration(-5) == "00:00:00"


def test_normalize_page_params() -> None:
    assert normalize_page_params(None, None) == (1, 50)
    assert normalize_page_params("0", "abc") == (1, 50)
    assert normalize_page_params(-2, 0) == (1, 50)
    assert normalize_page_params("3", 500) == (3, 100)
    assert normalize_page_params(2, 20, default_limit=20) == (2, 20)


def test_rank_by_date_desc_then_name() -> None:
    records = [
        AggregatedRecord(user_id="1", date=date(2024, 1, 1), user_name="bob"),
        AggregatedRecord(user_id="2", date=date(2024, 1, 2), user_name="Zed"),
        AggregatedRecord(user_id="3", date=date(2024, 1, 1), user_name="Alice"),
        AggregatedRecord(user_id="7", date=date(2024, 1, 1)),
    ]

    ranked = rank_records(records)

    assert [(r.date.day, r.display_name) for r in ranked] == [
        (2, "Zed"),
        (1, "Alice"),
        (1, "bob"),
        (1, "User 7"),
    ]


def test_second_page_of_120_records() -> None:
    base = date(2024, 1, 1)
    records = [AggregatedRecord(user_id="1", date=base + timedelta(days=i)) for i in range(120)]

    page = build_activity_page(records, page=2, limit=50)

    assert [r.date for r in page.records] == [base + timedelta(days=i) for i in range(69, 19, -1)]
    assert page.pagination.total == 120
    assert page.pagination.pages == 3
    assert page.pagination.page == 2


def test_page_past_the_end_is_empty() -> None:
    page = build_activity_page([AggregatedRecord(user_id="1", date=date(2024, 1, 1))], page=4, limit=10)

    assert page.records == []
    assert page.pagination.total == 1
    assert page.pagination.pages == 1


def test_empty_page_serializes() -> None:
    page = build_activity_page([], page=1, limit=50)

    assert activity_page_to_dict(page) == {
        "records": [],
        "pagination": {"page": 1, "limit": 50, "total": 0, "pages": 0},
    }


def test_active_session_serializes_without_end() -> None:
    start = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)
    record = AggregatedRecord(user_id="1", date=date(2024, 1, 10), user_name="Alice", is_active=True, first_enable=start)
    record.add_session(Session(start_time=start - timedelta(hours=2), end_time=start - timedelta(hours=1), duration_ms=3_600_000))
    record.add_session(Session(start_time=start, end_time=NOW, duration_ms=10_800_000, active=True))
    record.session_count = 2

    data = record_to_dict(record)

    assert data["id"] == "1_2024-01-10"
    assert data["date"] == "2024-01-10"
    assert data["totalDurationMs"] == 14_400_000
    assert data["isActive"] is True
    assert data["firstEnable"] == "2024-01-10T09:00:00+00:00"
    assert data["lastDisable"] is None
    assert data["sessions"] == [
        {"startTime": "2024-01-10T07:00:00+00:00", "endTime": "2024-01-10T08:00:00+00:00", "durationMs": 3_600_000},
        {"startTime": "2024-01-10T09:00:00+00:00", "endTime": None, "durationMs": 10_800_000},
    ]


def test_activity_content_lists_records() -> None:
    reporter = Reporter(ZoneInfo("UTC"))
    record = AggregatedRecord(
        user_id="1",
        date=date(2024, 1, 10),
        user_name="Alice",
        total_duration_ms=5_400_000,
        session_count=1,
        is_active=True,
    )
    activity = ActivityPage(records=[record], pagination=make_pagination(1, 10, 1))

    content = reporter.build_activity_content("Your tracked time", activity)

    assert content.splitlines() == [
        "**Your tracked time**",
        "- 2024-01-10 | Alice: `01:30:00` (1 session) - tracking now",
        "Page 1/1 (1 day records)",
    ]


def test_no_activity_message() -> None:
    reporter = Reporter(ZoneInfo("UTC"))

    content = reporter.build_activity_content("Your tracked time", build_activity_page([], 1, 10))

    assert "No tracked activity found." in content


def test_long_content_is_truncated() -> None:
    reporter = Reporter(ZoneInfo("UTC"))
    records = [
        AggregatedRecord(user_id=str(i), date=date(2024, 1, 1), user_name="x" * 60, session_count=2)
        for i in range(100)
    ]

    content = reporter.build_activity_content("All", build_activity_page(records, 1, 100))

    assert len(content) == MESSAGE_LIMIT
    assert content.endswith("...")


def test_login_log_content_uses_local_time() -> None:
    reporter = Reporter(ZoneInfo("America/New_York"))
    log = LoginLog(
        id="a",
        user_id="1",
        event_type="tracking_enabled",
        created_at=datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc),
    )

    content = reporter.build_login_log_content(LoginLogPage(logs=[log], pagination=make_pagination(1, 20, 1)))

    assert "- 2024-01-01 22:00:00: tracking_enabled" in content
    assert content.endswith("Page 1/1 (1 events)")
