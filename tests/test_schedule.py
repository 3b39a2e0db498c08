from __future__ import annotations

from datetime import datetime, timedelta, timezone

from dose_tracker.schedule import MAX_DOSES, generate_dose_schedule, is_dose_overdue

UTC = timezone.utc


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=UTC)


def test_twice_daily_open_ended_scenario() -> None:
    schedule = generate_dose_schedule(
        _at(1, 8), None, "Twice daily", now=_at(1, 20)
    )
    times = [d.scheduled_time for d in schedule[:3]]
    assert times == [_at(1, 8), _at(1, 20), _at(2, 8)]

    first = schedule[0]
    assert first.is_past is True
    assert first.is_overdue is True

    # Exactly at now: past, not overdue.
    second = schedule[1]
    assert second.is_past is True
    assert second.is_overdue is False

    assert schedule[2].is_past is False
    assert schedule[2].is_overdue is False


def test_open_ended_window_is_thirty_days() -> None:
    now = _at(1, 8)
    schedule = generate_dose_schedule(now, None, "Once daily", now=now)
    assert schedule[-1].scheduled_time == now + timedelta(days=30)
    assert len(schedule) == 31


def test_end_date_is_inclusive() -> None:
    schedule = generate_dose_schedule(
        _at(1, 8), _at(2, 8), "every 12 hours", now=_at(1, 0)
    )
    assert [d.scheduled_time for d in schedule] == [_at(1, 8), _at(1, 20), _at(2, 8)]


def test_capped_at_one_hundred_doses() -> None:
    far_end = datetime(2030, 1, 1, tzinfo=UTC)
    schedule = generate_dose_schedule(
        _at(1, 0), far_end, "every 1 hour", now=_at(1, 0)
    )
    assert len(schedule) == MAX_DOSES


def test_hourly_without_end_date_stays_capped() -> None:
    schedule = generate_dose_schedule(_at(1, 0), None, "every 1 hour", now=_at(1, 0))
    assert len(schedule) == MAX_DOSES


def test_strictly_increasing() -> None:
    schedule = generate_dose_schedule(
        _at(1, 0), None, "3 times per day", now=_at(5, 0)
    )
    times = [d.scheduled_time for d in schedule]
    assert all(a < b for a, b in zip(times, times[1:]))


def test_deterministic_for_same_inputs() -> None:
    kwargs = {"now": _at(3, 9)}
    first = generate_dose_schedule(_at(1, 8), None, "every 6 hours", **kwargs)
    second = generate_dose_schedule(_at(1, 8), None, "every 6 hours", **kwargs)
    assert first == second


def test_last_dose_time_overrides_start() -> None:
    schedule = generate_dose_schedule(
        _at(1, 8), _at(3, 8), "every 12 hours", _at(2, 9), now=_at(1, 0)
    )
    assert schedule[0].scheduled_time == _at(2, 9)
    assert schedule[-1].scheduled_time == _at(2, 21)


def test_unparseable_frequency_gives_empty_schedule() -> None:
    assert generate_dose_schedule(_at(1, 8), None, "as needed", now=_at(1, 8)) == []


def test_end_before_start_gives_empty_schedule() -> None:
    schedule = generate_dose_schedule(_at(5, 8), _at(1, 8), "Once daily", now=_at(1, 8))
    assert schedule == []


def test_custom_grace_period() -> None:
    schedule = generate_dose_schedule(
        _at(1, 8),
        _at(1, 8),
        "Once daily",
        now=_at(1, 8, 45),
        grace_period=timedelta(minutes=30),
    )
    assert schedule[0].is_overdue is True


def test_is_dose_overdue_boundaries() -> None:
    now = _at(1, 12)
    assert is_dose_overdue(_at(1, 10), now) is False
    assert is_dose_overdue(_at(1, 9, 59), now) is True
    assert is_dose_overdue(_at(1, 13), now) is False


def test_sub_microsecond_interval_gives_empty_schedule() -> None:
    schedule = generate_dose_schedule(
        _at(1, 8), None, "100000000000000 times per day", now=_at(1, 8)
    )
    assert schedule == []


def test_tiny_interval_stays_strictly_increasing() -> None:
    schedule = generate_dose_schedule(
        _at(1, 8), None, "86400000 times per day", now=_at(1, 8)
    )
    times = [d.scheduled_time for d in schedule]
    assert len(times) == MAX_DOSES
    assert len(set(times)) == MAX_DOSES
    assert all(a < b for a, b in zip(times, times[1:]))


def test_out_of_range_preview_window_is_capped() -> None:
    schedule = generate_dose_schedule(
        _at(1, 8), None, "Once daily", now=_at(1, 8), preview_days=10**9
    )
    assert len(schedule) == MAX_DOSES
    assert schedule[0].scheduled_time == _at(1, 8)
