"""Persistencia SQLite para configuracion, recetas y eventos de dosis."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from dateutil import parser as date_parser

from dose_tracker.base import DoseEventStore
from dose_tracker.model import DoseEvent, Prescription

_LOGGER = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS prescriptions (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    frequency TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT,
    pet_name TEXT,
    last_dose_time TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS dose_events (
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

CREATE INDEX IF NOT EXISTS idx_dose_events_prescription
ON dose_events(prescription_id);
"""

_EVENT_COLUMNS = """
    id, prescription_id, scheduled_time, given_time, given_by,
    notes, skipped, skip_reason
"""


MAX_GRACE_PERIOD_HOURS = 720.0
MAX_PREVIEW_DAYS = 3650


@dataclass(frozen=True)
class AppConfig:
    """Configuracion persistida de la app."""

    timezone: str = "UTC"
    grace_period_hours: float = 2.0
    preview_days: int = 30


class SQLiteStore(DoseEventStore):
    """Repositorio SQLite para la app."""

    def __init__(self, db_path: Path) -> None:
        """Create store and ensure schema exists."""
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            self._migrate(conn)
            conn.commit()

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Apply lightweight schema/data migrations."""
        # Keep the newest event per dose before enforcing uniqueness.
        removed = conn.execute(
            """
            DELETE FROM dose_events
            WHERE id NOT IN (
                SELECT MAX(id) FROM dose_events
                GROUP BY prescription_id, scheduled_time
            )
            """
        ).rowcount
        if removed:
            _LOGGER.warning("Removed %d duplicate dose events", removed)
        conn.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_dose_events_dose_unique
            ON dose_events(prescription_id, scheduled_time)
            """
        )

    def load_config(self) -> AppConfig:
        """Devuelve configuracion guardada o defaults."""
        defaults = AppConfig()
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        values = {row["key"]: row["value"] for row in rows}
        return AppConfig(
            timezone=values.get("timezone") or defaults.timezone,
            grace_period_hours=_parse_positive(
                values.get("grace_period_hours"),
                float,
                defaults.grace_period_hours,
                MAX_GRACE_PERIOD_HOURS,
            ),
            preview_days=_parse_positive(
                values.get("preview_days"), int, defaults.preview_days, MAX_PREVIEW_DAYS
            ),
        )

    def save_config(self, config: AppConfig) -> None:
        """Guarda la configuracion en tabla key/value."""
        payload = {
            "timezone": config.timezone,
            "grace_period_hours": str(config.grace_period_hours),
            "preview_days": str(config.preview_days),
        }
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                payload.items(),
            )
            conn.commit()

    def save_prescription(self, prescription: Prescription) -> None:
        """Crea o actualiza una receta."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO prescriptions(
                    id, title, frequency, start_date, end_date,
                    pet_name, last_dose_time, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title=excluded.title,
                    frequency=excluded.frequency,
                    start_date=excluded.start_date,
                    end_date=excluded.end_date,
                    pet_name=excluded.pet_name,
                    last_dose_time=excluded.last_dose_time
                """,
                (
                    prescription.id,
                    prescription.title,
                    prescription.frequency,
                    _to_db(prescription.start_date),
                    _to_db(prescription.end_date),
                    prescription.pet_name,
                    _to_db(prescription.last_dose_time),
                    datetime.now(tz=timezone.utc).isoformat(timespec="seconds"),
                ),
            )
            conn.commit()

    def get_prescription(self, prescription_id: str) -> Prescription:
        """Obtiene una receta.

        Raises:
            KeyError: If no prescription has that id.
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM prescriptions WHERE id = ?", (prescription_id,)
            ).fetchone()
        if row is None:
            raise KeyError(prescription_id)
        return _row_to_prescription(row)

    def list_prescriptions(self) -> list[Prescription]:
        """Todas las recetas, las mas recientes primero."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM prescriptions ORDER BY start_date DESC, id"
            ).fetchall()
        return [_row_to_prescription(row) for row in rows]

    def events_for(self, prescription_id: str) -> list[DoseEvent]:
        """Eventos de una receta, mas recientes primero."""
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_EVENT_COLUMNS}
                FROM dose_events
                WHERE prescription_id = ?
                ORDER BY scheduled_time DESC
                """,
                (prescription_id,),
            ).fetchall()
        return [_row_to_event(row) for row in rows]

    def upsert_given(
        self,
        prescription_id: str,
        scheduled_time: datetime,
        *,
        given_time: datetime,
        given_by: str | None,
        notes: str | None = None,
    ) -> DoseEvent:
        """Marca una dosis como dada (una sola fila por dosis)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO dose_events(
                    prescription_id, scheduled_time, given_time, given_by,
                    notes, skipped, created_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?)
                ON CONFLICT(prescription_id, scheduled_time) DO UPDATE SET
                    given_time=excluded.given_time,
                    given_by=excluded.given_by,
                    notes=excluded.notes
                """,
                (
                    prescription_id,
                    _to_db(scheduled_time),
                    _to_db(given_time),
                    given_by,
                    notes,
                    _to_db(given_time),
                ),
            )
            conn.commit()
            return _fetch_event(conn, prescription_id, scheduled_time)

    def upsert_skip(
        self,
        prescription_id: str,
        scheduled_time: datetime,
        *,
        reason: str,
    ) -> DoseEvent:
        """Marca una dosis como salteada (una sola fila por dosis)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO dose_events(
                    prescription_id, scheduled_time, skipped, skip_reason, created_at
                ) VALUES (?, ?, 1, ?, ?)
                ON CONFLICT(prescription_id, scheduled_time) DO UPDATE SET
                    skipped=1,
                    skip_reason=excluded.skip_reason
                """,
                (
                    prescription_id,
                    _to_db(scheduled_time),
                    reason,
                    datetime.now(tz=timezone.utc).isoformat(timespec="seconds"),
                ),
            )
            conn.commit()
            return _fetch_event(conn, prescription_id, scheduled_time)


def _fetch_event(
    conn: sqlite3.Connection, prescription_id: str, scheduled_time: datetime
) -> DoseEvent:
    row = conn.execute(
        f"""
        SELECT {_EVENT_COLUMNS}
        FROM dose_events
        WHERE prescription_id = ? AND scheduled_time = ?
        """,
        (prescription_id, _to_db(scheduled_time)),
    ).fetchone()
    return _row_to_event(row)


def _to_db(value: datetime | None) -> str | None:
    """Serialize instants as UTC ISO text so equal instants share a key."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def _from_db(raw: str | None) -> datetime | None:
    if raw is None or not str(raw).strip():
        return None
    return date_parser.isoparse(raw)


def _row_to_event(row: sqlite3.Row) -> DoseEvent:
    scheduled = _from_db(row["scheduled_time"])
    if scheduled is None:
        raise ValueError(f"Dose event {row['id']} has no scheduled_time")
    return DoseEvent(
        id=int(row["id"]),
        prescription_id=str(row["prescription_id"]),
        scheduled_time=scheduled,
        given_time=_from_db(row["given_time"]),
        given_by=row["given_by"],
        notes=row["notes"],
        skipped=bool(row["skipped"]),
        skip_reason=row["skip_reason"],
    )


def _row_to_prescription(row: sqlite3.Row) -> Prescription:
    start = _from_db(row["start_date"])
    if start is None:
        raise ValueError(f"Prescription {row['id']} has no start_date")
    return Prescription(
        id=str(row["id"]),
        title=str(row["title"]),
        frequency=str(row["frequency"]),
        start_date=start,
        end_date=_from_db(row["end_date"]),
        pet_name=row["pet_name"],
        last_dose_time=_from_db(row["last_dose_time"]),
    )


def _parse_positive(
    raw: str | None, cast: type, default: float, maximum: float
) -> float:
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        return default
    return value if 0 < value <= maximum else default
