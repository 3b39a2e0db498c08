"""Agrupación de recetas: activas, completadas, a reponer."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from dose_tracker.frequency import parse_frequency
from dose_tracker.model import Prescription
from dose_tracker.tracker import remaining_doses

REFILL_WINDOW_DAYS = 7
ENDING_SOON_DOSES = 5


@dataclass(frozen=True)
class PrescriptionGroups:
    """Prescriptions split by course state."""

    active: list[Prescription] = field(default_factory=list)
    completed: list[Prescription] = field(default_factory=list)


def is_completed(prescription: Prescription, now: datetime) -> bool:
    """True when the course has an end date before ``now``."""
    return prescription.end_date is not None and prescription.end_date < now


def needs_refill(
    prescription: Prescription,
    now: datetime,
    window_days: int = REFILL_WINDOW_DAYS,
) -> bool:
    """True when the course ends within the next ``window_days`` whole days."""
    if prescription.end_date is None or prescription.end_date < now:
        return False
    return (prescription.end_date - now).days <= window_days


def is_ending_soon(
    prescription: Prescription,
    now: datetime,
    threshold: int = ENDING_SOON_DOSES,
) -> bool:
    """True when few doses are left in a course that has not ended."""
    if prescription.end_date is None or prescription.end_date < now:
        return False
    remaining = remaining_doses(
        prescription.start_date,
        prescription.end_date,
        prescription.frequency,
        now=now,
    )
    return remaining is not None and remaining <= threshold


def group_prescriptions(
    prescriptions: Iterable[Prescription], now: datetime
) -> PrescriptionGroups:
    """Split prescriptions into active and completed, keeping input order."""
    groups = PrescriptionGroups()
    for prescription in prescriptions:
        if is_completed(prescription, now):
            groups.completed.append(prescription)
        else:
            groups.active.append(prescription)
    return groups


def estimate_doses_today(prescriptions: Iterable[Prescription]) -> int:
    """Rough daily dose count: rounded sum of doses per day."""
    total = 0.0
    for prescription in prescriptions:
        parsed = parse_frequency(prescription.frequency)
        if parsed is not None:
            total += parsed.doses_per_day
    return round(total)
