"""Interpretación de frecuencias de medicación en texto libre."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta

from dose_tracker.model import FrequencySpec

_LOGGER = logging.getLogger(__name__)

_EVERY_N_HOURS = re.compile(r"every (\d+) hours?")
_N_TIMES_PER_DAY = re.compile(r"(\d+) times? (?:per|a) day")

# Order matters: the first keyword found wins ("four times, not once" -> 1).
_KEYWORD_TIMES: tuple[tuple[str, int], ...] = (
    ("once", 1),
    ("twice", 2),
    ("three", 3),
    ("four", 4),
)


def parse_frequency(text: str) -> FrequencySpec | None:
    """Parse a frequency such as "Every 12 hours" or "Twice daily".

    Args:
        text: Free text entered by a vet or owner.

    Returns:
        Parsed interval, or None when no schedule can be derived.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    lower = text.lower()

    match = _EVERY_N_HOURS.search(lower)
    if match:
        return _from_hours(_to_int(match.group(1)), text)

    for word, times in _KEYWORD_TIMES:
        if word in lower:
            return _from_times_per_day(times, text)

    match = _N_TIMES_PER_DAY.search(lower)
    if match:
        return _from_times_per_day(_to_int(match.group(1)), text)

    _LOGGER.debug("Unparseable frequency: %r", text)
    return None


def calculate_next_dose(last_given_time: datetime, frequency: str) -> datetime | None:
    """Return the dose after ``last_given_time``, or None if unparseable."""
    parsed = parse_frequency(frequency)
    if parsed is None:
        return None
    try:
        return last_given_time + timedelta(hours=parsed.hours_between_doses)
    except OverflowError:
        return None


def _to_int(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        # More digits than int() accepts.
        return None


def _from_hours(hours: int | None, text: str) -> FrequencySpec | None:
    if hours is None or hours <= 0:
        _LOGGER.debug("Invalid interval in frequency: %r", text)
        return None
    return _build(hours, 24 / hours, text)


def _from_times_per_day(times: int | None, text: str) -> FrequencySpec | None:
    if times is None or times <= 0:
        _LOGGER.debug("Invalid doses per day in frequency: %r", text)
        return None
    return _build(24 / times, times, text)


def _build(hours: float, per_day: float, text: str) -> FrequencySpec | None:
    try:
        spec = FrequencySpec(
            hours_between_doses=float(hours), doses_per_day=float(per_day)
        )
    except OverflowError:
        _LOGGER.debug("Out of range frequency: %r", text)
        return None
    if spec.hours_between_doses <= 0 or spec.doses_per_day <= 0:
        _LOGGER.debug("Out of range frequency: %r", text)
        return None
    return spec
