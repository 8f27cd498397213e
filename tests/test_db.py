from datetime import datetime, timezone

from activity_tracker.db import Database


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 2, 1, hour, minute, tzinfo=timezone.utc)


def make_db() -> Database:
    db = Database(":memory:")
    db.initialize()
    return db


def test_events_come_back_grouped_by_user_in_time_order() -> None:
    db = make_db()
    db.insert_login_log("2", "tracking_enabled", at(9))
    db.insert_login_log("1", "tracking_disabled", at(11))
    db.insert_login_log("1", "tracking_enabled", at(10))
    db.insert_login_log("1", "login", at(8))

    rows = db.fetch_tracking_events()

    assert [(r["user_id"], r["event_type"]) for r in rows] == [
        ("1", "tracking_enabled"),
        ("1", "tracking_disabled"),
        ("2", "tracking_enabled"),
    ]


def test_equal_timestamps_keep_insertion_order() -> None:
    db = make_db()
    db.insert_login_log("1", "tracking_enabled", at(10))
    db.insert_login_log("1", "tracking_disabled", at(10))

    rows = db.fetch_tracking_events(user_id="1")

    assert [r["event_type"] for r in rows] == ["tracking_enabled", "tracking_disabled"]


def test_time_bounds_are_half_open() -> None:
    db = make_db()
    db.insert_login_log("1", "tracking_enabled", at(9))
    db.insert_login_log("1", "tracking_disabled", at(10))
    db.insert_login_log("1", "tracking_enabled", at(10, 0).replace(microsecond=500))

    rows = db.fetch_tracking_events(start_utc=at(9, 30), end_utc=at(10, 0).replace(microsecond=500))

    assert [r["event_type"] for r in rows] == ["tracking_disabled"]


def test_rows_carry_user_display_fields() -> None:
    db = make_db()
    db.upsert_user("1", name="Alice", email="alice@example.com", role_name="Manager")
    db.insert_login_log("1", "tracking_enabled", at(9))
    db.insert_login_log("2", "tracking_enabled", at(9))

    rows = db.fetch_tracking_events()

    assert (rows[0]["user_name"], rows[0]["user_email"], rows[0]["user_role"]) == ("Alice", "alice@example.com", "Manager")
    assert rows[1]["user_name"] is None


def test_upsert_keeps_values_when_fields_missing() -> None:
    db = make_db()
    db.upsert_user("1", name="Alice", email="alice@example.com")
    db.set_tracking_enabled("1", True, at(9))
    db.upsert_user("1", name="Alicia")

    user = db.get_user("1")

    assert user.name == "Alicia"
    assert user.email == "alice@example.com"
    assert user.time_tracking_enabled is True
    assert db.get_tracking_enabled("missing") is None
