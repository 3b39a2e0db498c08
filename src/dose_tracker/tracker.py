"""Conciliación de la grilla de dosis con los eventos registrados."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime, timedelta, timezone

from dose_tracker.base import DoseEventStore
from dose_tracker.frequency import parse_frequency
from dose_tracker.model import (
    DoseEvent,
    DoseStatus,
    DoseView,
    Prescription,
    ScheduledDose,
    ScheduleSummary,
)
from dose_tracker.schedule import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_PREVIEW_DAYS,
    generate_dose_schedule,
)

_LOGGER = logging.getLogger(__name__)

_PENDING = (DoseStatus.OVERDUE, DoseStatus.MISSED, DoseStatus.UPCOMING)


class SkipReasonRequiredError(ValueError):
    """Raised when a dose is skipped without a reason."""


def classify_dose(dose: ScheduledDose, event: DoseEvent | None) -> DoseStatus:
    """Return the status of one scheduled dose.

    A given time beats a skip flag on the same event.
    """
    if event is not None and event.given_time is not None:
        return DoseStatus.GIVEN
    if event is not None and event.skipped:
        return DoseStatus.SKIPPED
    if dose.is_overdue:
        return DoseStatus.OVERDUE
    if dose.is_past:
        return DoseStatus.MISSED
    return DoseStatus.UPCOMING


def reconcile(
    scheduled: Sequence[ScheduledDose],
    events: Iterable[DoseEvent],
    *,
    now: datetime | None = None,
    remaining_doses: int | None = None,
) -> list[DoseView]:
    """Join scheduled doses with events on exact timestamp equality.

    Args:
        scheduled: Output of ``generate_dose_schedule``.
        events: Stored events of the same prescription.
        now: When given, upcoming views carry a ``next_dose_in`` label.
        remaining_doses: Prescription-level count copied into every view.

    Returns:
        One view per scheduled dose, in schedule order.
    """
    by_time: dict[datetime, DoseEvent] = {}
    for event in events:
        by_time[event.scheduled_time] = event

    views: list[DoseView] = []
    for dose in scheduled:
        event = by_time.get(dose.scheduled_time)
        status = classify_dose(dose, event)
        label = None
        if now is not None and status is DoseStatus.UPCOMING:
            label = next_dose_in(dose.scheduled_time, now=now)
        views.append(
            DoseView(
                scheduled_time=dose.scheduled_time,
                status=status,
                remaining_doses=remaining_doses,
                next_dose_in=label,
                given_time=event.given_time if event is not None else None,
                skip_reason=event.skip_reason if event is not None else None,
            )
        )
    return views


def next_dose(scheduled: Sequence[ScheduledDose]) -> ScheduledDose | None:
    """First dose that is not in the past."""
    for dose in scheduled:
        if not dose.is_past:
            return dose
    return None


def remaining_doses(
    start_date: datetime,
    end_date: datetime | None,
    frequency: str,
    *,
    now: datetime,
) -> int | None:
    """Doses left in a course with a known end date.

    Returns None for open-ended courses or unparseable frequencies.
    """
    if end_date is None:
        return None
    parsed = parse_frequency(frequency)
    if parsed is None:
        return None

    interval = parsed.hours_between_doses
    total_doses = math.ceil(_whole_hours(end_date - start_date) / interval)
    elapsed_hours = max(0, _whole_hours(now - start_date))
    elapsed_doses = math.floor(elapsed_hours / interval)
    return max(0, total_doses - elapsed_doses)


def next_dose_in(instant: datetime, *, now: datetime) -> str:
    """Human-scale label for the time left until ``instant``."""
    delta = instant - now
    if delta < timedelta(0):
        return "Overdue"
    minutes = int(delta.total_seconds() // 60)
    if minutes == 0:
        return "Now"
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    days, rest = divmod(hours, 24)
    return f"{days}d {rest}h" if rest else f"{days}d"


def doses_due_today(views: Iterable[DoseView], *, now: datetime) -> int:
    """Count pending doses scheduled on the calendar day of ``now``."""
    today = now.date()
    return sum(
        1
        for view in views
        if view.status in _PENDING and _local_date(view.scheduled_time, now) == today
    )


def summarize(
    prescription: Prescription,
    events: Iterable[DoseEvent],
    *,
    now: datetime,
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
    preview_days: int = DEFAULT_PREVIEW_DAYS,
) -> ScheduleSummary:
    """Build the full schedule view model of one prescription."""
    schedule = generate_dose_schedule(
        prescription.start_date,
        prescription.end_date,
        prescription.frequency,
        prescription.last_dose_time,
        now=now,
        grace_period=grace_period,
        preview_days=preview_days,
    )
    if not schedule:
        return ScheduleSummary()

    remaining = remaining_doses(
        prescription.start_date,
        prescription.end_date,
        prescription.frequency,
        now=now,
    )
    views = reconcile(schedule, events, now=now, remaining_doses=remaining)
    upcoming = next_dose(schedule)
    return ScheduleSummary(
        views=views,
        next_dose=upcoming.scheduled_time if upcoming else None,
        next_dose_in=(
            next_dose_in(upcoming.scheduled_time, now=now) if upcoming else None
        ),
        remaining_doses=remaining,
        doses_due_today=doses_due_today(views, now=now),
    )


class DoseStateTracker:
    """Read and record dose state through a ``DoseEventStore``."""

    def __init__(
        self,
        store: DoseEventStore,
        *,
        clock: Callable[[], datetime] | None = None,
        grace_period: timedelta = DEFAULT_GRACE_PERIOD,
        preview_days: int = DEFAULT_PREVIEW_DAYS,
    ) -> None:
        """Create a tracker.

        Args:
            store: Persistence collaborator for dose events.
            clock: Returns the current instant; defaults to UTC system time.
            grace_period: Time past a dose before it is overdue.
            preview_days: Window for open-ended prescriptions.
        """
        self._store = store
        self._clock = clock or _utc_now
        self._grace_period = grace_period
        self._preview_days = preview_days

    def summary(self, prescription: Prescription) -> ScheduleSummary:
        """Current schedule view of ``prescription``."""
        return summarize(
            prescription,
            self._store.events_for(prescription.id),
            now=self._clock(),
            grace_period=self._grace_period,
            preview_days=self._preview_days,
        )

    def mark_given(
        self,
        prescription_id: str,
        scheduled_time: datetime,
        *,
        actor: str | None = None,
        notes: str | None = None,
    ) -> DoseEvent:
        """Record a dose as given now; repeated calls keep a single event."""
        event = self._store.upsert_given(
            prescription_id,
            scheduled_time,
            given_time=self._clock(),
            given_by=actor,
            notes=notes or None,
        )
        _LOGGER.info(
            "Dose %s of %s marked given by %s",
            scheduled_time.isoformat(),
            prescription_id,
            actor,
        )
        return event

    def skip_dose(
        self,
        prescription_id: str,
        scheduled_time: datetime,
        reason: str | None,
    ) -> DoseEvent:
        """Record a dose as skipped.

        Raises:
            SkipReasonRequiredError: If ``reason`` is blank. Nothing is written.
        """
        if reason is None or not reason.strip():
            _LOGGER.warning(
                "Skip of %s for %s rejected: missing reason",
                scheduled_time.isoformat(),
                prescription_id,
            )
            raise SkipReasonRequiredError("A reason is required to skip a dose")
        event = self._store.upsert_skip(
            prescription_id,
            scheduled_time,
            reason=reason.strip(),
        )
        _LOGGER.info(
            "Dose %s of %s skipped", scheduled_time.isoformat(), prescription_id
        )
        return event


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _whole_hours(delta: timedelta) -> int:
    # Truncates toward zero.
    return int(delta.total_seconds() / 3600)


def _local_date(value: datetime, now: datetime) -> date:
    if value.tzinfo is not None and now.tzinfo is not None:
        return value.astimezone(now.tzinfo).date()
    return value.date()
