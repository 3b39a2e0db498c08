"""Modelos tipados para recetas, dosis programadas y eventos de dosis."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DoseStatus(str, Enum):
    """Final status of one scheduled dose."""

    GIVEN = "given"
    SKIPPED = "skipped"
    OVERDUE = "overdue"
    MISSED = "missed"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class FrequencySpec:
    """Normalized dosing interval parsed from frequency text."""

    hours_between_doses: float
    doses_per_day: float


@dataclass(frozen=True)
class ScheduledDose:
    """One expected administration (never persisted)."""

    scheduled_time: datetime
    is_past: bool
    is_overdue: bool


@dataclass(frozen=True)
class DoseEvent:
    """Persisted administration or explicit skip of a scheduled dose."""

    prescription_id: str
    scheduled_time: datetime
    given_time: datetime | None = None
    given_by: str | None = None
    notes: str | None = None
    skipped: bool = False
    skip_reason: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class DoseView:
    """Scheduled dose joined with its event, ready for display."""

    scheduled_time: datetime
    status: DoseStatus
    remaining_doses: int | None = None
    next_dose_in: str | None = None
    given_time: datetime | None = None
    skip_reason: str | None = None


@dataclass(frozen=True)
class Prescription:
    """Medical record fields the scheduler reads."""

    id: str
    title: str
    frequency: str
    start_date: datetime
    end_date: datetime | None = None
    pet_name: str | None = None
    last_dose_time: datetime | None = None


@dataclass(frozen=True)
class ScheduleSummary:
    """View model of a prescription's dose schedule."""

    views: list[DoseView] = field(default_factory=list)
    next_dose: datetime | None = None
    next_dose_in: str | None = None
    remaining_doses: int | None = None
    doses_due_today: int = 0
