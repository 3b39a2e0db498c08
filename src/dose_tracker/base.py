"""Clase base del colaborador de persistencia de eventos de dosis."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from dose_tracker.model import DoseEvent


class DoseEventStore(ABC):
    """Single source of truth for dose events.

    Implementations must keep at most one event per
    ``(prescription_id, scheduled_time)``.
    """

    @abstractmethod
    def events_for(self, prescription_id: str) -> list[DoseEvent]:
        """Return the events of one prescription."""

    @abstractmethod
    def upsert_given(
        self,
        prescription_id: str,
        scheduled_time: datetime,
        *,
        given_time: datetime,
        given_by: str | None,
        notes: str | None = None,
    ) -> DoseEvent:
        """Record a dose as given, updating the existing event if any."""

    @abstractmethod
    def upsert_skip(
        self,
        prescription_id: str,
        scheduled_time: datetime,
        *,
        reason: str,
    ) -> DoseEvent:
        """Record a dose as skipped, updating the existing event if any."""
