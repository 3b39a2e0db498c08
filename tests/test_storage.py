from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dose_tracker.model import DoseStatus, Prescription
from dose_tracker.storage import AppConfig, SQLiteStore
from dose_tracker.tracker import DoseStateTracker, SkipReasonRequiredError

UTC = timezone.utc
T = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)


def _rx(end: datetime | None = None) -> Prescription:
    return Prescription(
        id="rx-1",
        title="Carprofen",
        frequency="every 12 hours",
        start_date=T,
        end_date=end,
        pet_name="Toby",
    )


def test_store_config_round_trip(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    assert store.load_config() == AppConfig()

    store.save_config(
        AppConfig(timezone="Europe/Madrid", grace_period_hours=1.5, preview_days=14)
    )
    loaded = store.load_config()
    assert loaded.timezone == "Europe/Madrid"
    assert loaded.grace_period_hours == 1.5
    assert loaded.preview_days == 14


def test_store_config_falls_back_on_bad_values(tmp_path: Path) -> None:
    db = tmp_path / "app.sqlite3"
    store = SQLiteStore(db)
    with sqlite3.connect(db) as conn:
        conn.executemany(
            "INSERT INTO app_config(key, value) VALUES(?, ?)",
            [("grace_period_hours", "soon"), ("preview_days", "-3")],
        )
    loaded = store.load_config()
    assert loaded.grace_period_hours == 2.0
    assert loaded.preview_days == 30


def test_store_config_ignores_out_of_range_values(tmp_path: Path) -> None:
    db = tmp_path / "app.sqlite3"
    store = SQLiteStore(db)
    with sqlite3.connect(db) as conn:
        conn.executemany(
            "INSERT INTO app_config(key, value) VALUES(?, ?)",
            [("grace_period_hours", "1e9"), ("preview_days", "1000000000")],
        )
    loaded = store.load_config()
    assert loaded.grace_period_hours == 2.0
    assert loaded.preview_days == 30


def test_prescription_round_trip(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    rx = _rx(end=T + timedelta(days=7))
    store.save_prescription(rx)

    loaded = store.get_prescription("rx-1")
    assert loaded.start_date == rx.start_date
    assert loaded.end_date == rx.end_date
    assert loaded.pet_name == "Toby"
    assert [p.id for p in store.list_prescriptions()] == ["rx-1"]

    store.save_prescription(_rx())
    assert store.get_prescription("rx-1").end_date is None
    assert len(store.list_prescriptions()) == 1


def test_get_unknown_prescription_raises(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    with pytest.raises(KeyError):
        store.get_prescription("missing")


def test_mark_given_twice_keeps_single_row(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    first = store.upsert_given("rx-1", T, given_time=T, given_by="owner")
    second = store.upsert_given(
        "rx-1", T, given_time=T + timedelta(minutes=20), given_by="sitter"
    )

    events = store.events_for("rx-1")
    assert len(events) == 1
    assert first.id == second.id
    assert events[0].given_time == T + timedelta(minutes=20)
    assert events[0].given_by == "sitter"


def test_same_instant_in_other_zone_is_the_same_dose(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    local = T.astimezone(timezone(timedelta(hours=2)))
    store.upsert_given("rx-1", T, given_time=T, given_by=None)
    store.upsert_skip("rx-1", local, reason="Vomited")

    events = store.events_for("rx-1")
    assert len(events) == 1
    assert events[0].scheduled_time == T
    assert events[0].given_time == T
    assert events[0].skipped is True


def test_skip_then_given_classifies_as_given(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    rx = _rx(end=T + timedelta(days=1))
    store.save_prescription(rx)
    tracker = DoseStateTracker(store, clock=lambda: T + timedelta(hours=1))

    tracker.skip_dose(rx.id, T, "Pet refused")
    tracker.mark_given(rx.id, T, actor="owner", notes="Took it later")

    summary = tracker.summary(store.get_prescription(rx.id))
    assert summary.views[0].status is DoseStatus.GIVEN
    assert summary.views[0].skip_reason == "Pet refused"
    assert store.events_for(rx.id)[0].notes == "Took it later"


def test_rejected_skip_writes_nothing(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    tracker = DoseStateTracker(store, clock=lambda: T)
    with pytest.raises(SkipReasonRequiredError):
        tracker.skip_dose("rx-1", T, "")
    assert store.events_for("rx-1") == []


def test_events_round_trip_match_generated_schedule(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    rx = _rx()
    store.save_prescription(rx)
    now = T + timedelta(hours=30)
    tracker = DoseStateTracker(store, clock=lambda: now)

    tracker.mark_given(rx.id, T + timedelta(hours=12), actor="owner")
    summary = tracker.summary(store.get_prescription(rx.id))

    statuses = [v.status for v in summary.views[:4]]
    assert statuses == [
        DoseStatus.OVERDUE,
        DoseStatus.GIVEN,
        DoseStatus.OVERDUE,
        DoseStatus.UPCOMING,
    ]


def test_migration_removes_duplicate_dose_rows(tmp_path: Path) -> None:
    db = tmp_path / "legacy.sqlite3"
    with sqlite3.connect(db) as conn:
        conn.executescript(
            """
            CREATE TABLE dose_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                prescription_id TEXT NOT NULL,
                scheduled_time TEXT NOT NULL,
                given_time TEXT,
                given_by TEXT,
                notes TEXT,
                skipped INTEGER NOT NULL DEFAULT 0,
                skip_reason TEXT,
                created_at TEXT NOT NULL
            );
            INSERT INTO dose_events(prescription_id, scheduled_time, given_time,
                                    given_by, created_at)
            VALUES ('rx-1', '2024-01-01T08:00:00+00:00', '2024-01-01T08:05:00+00:00',
                    'a', '2024-01-01');
            INSERT INTO dose_events(prescription_id, scheduled_time, given_time,
                                    given_by, created_at)
            VALUES ('rx-1', '2024-01-01T08:00:00+00:00', '2024-01-01T08:40:00+00:00',
                    'b', '2024-01-01');
            """
        )

    store = SQLiteStore(db)
    events = store.events_for("rx-1")
    assert len(events) == 1
    assert events[0].given_by == "b"
    assert events[0].notes is None

    store.upsert_given("rx-1", T, given_time=T, given_by="c")
    assert len(store.events_for("rx-1")) == 1
