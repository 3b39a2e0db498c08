"""Generación de la grilla de dosis a partir de inicio, fin y frecuencia."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from dose_tracker.frequency import parse_frequency
from dose_tracker.model import ScheduledDose

_LOGGER = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = timedelta(hours=2)
DEFAULT_PREVIEW_DAYS = 30
MAX_DOSES = 100


def is_dose_overdue(
    scheduled_time: datetime,
    now: datetime,
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
) -> bool:
    """True when more than ``grace_period`` has passed since the dose."""
    return scheduled_time <= now and (now - scheduled_time) > grace_period


def generate_dose_schedule(
    start_date: datetime,
    end_date: datetime | None,
    frequency: str,
    last_dose_time: datetime | None = None,
    *,
    now: datetime,
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
    preview_days: int = DEFAULT_PREVIEW_DAYS,
    max_doses: int = MAX_DOSES,
) -> list[ScheduledDose]:
    """Build the ordered dose timetable of a prescription.

    The schedule starts at ``last_dose_time`` when given, else at
    ``start_date``. Without an end date it covers ``preview_days`` past
    ``now``. It never holds more than ``max_doses`` entries.

    Args:
        start_date: Prescription start.
        end_date: Prescription end (inclusive), or None for open-ended.
        frequency: Free-text frequency.
        last_dose_time: Optional anchor overriding ``start_date``.
        now: Current instant.
        grace_period: Time past a dose before it counts as overdue.
        preview_days: Window used for open-ended prescriptions.
        max_doses: Hard cap on the sequence length.

    Returns:
        Doses strictly increasing in time; empty if the frequency is
        unparseable.
    """
    parsed = parse_frequency(frequency)
    if parsed is None:
        return []

    try:
        step = timedelta(hours=parsed.hours_between_doses)
    except OverflowError:
        _LOGGER.debug("Interval out of range for %r", frequency)
        return []
    if step <= timedelta(0):
        _LOGGER.debug("Interval below one microsecond for %r", frequency)
        return []

    current = last_dose_time if last_dose_time is not None else start_date
    effective_end = end_date
    if effective_end is None:
        try:
            effective_end = now + timedelta(days=preview_days)
        except OverflowError:
            # Bounded by max_doses only.
            _LOGGER.debug("Preview window of %d days out of range", preview_days)

    schedule: list[ScheduledDose] = []
    while len(schedule) < max_doses and (
        effective_end is None or current <= effective_end
    ):
        schedule.append(
            ScheduledDose(
                scheduled_time=current,
                is_past=current <= now,
                is_overdue=is_dose_overdue(current, now, grace_period),
            )
        )
        try:
            current = current + step
        except OverflowError:
            break

    if len(schedule) >= max_doses and (
        effective_end is None or current <= effective_end
    ):
        _LOGGER.debug("Schedule for %r truncated at %d doses", frequency, max_doses)
    _LOGGER.debug("Generated %d doses for %r", len(schedule), frequency)
    return schedule
