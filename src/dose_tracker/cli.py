"""CLI para registrar recetas y seguir la grilla de dosis."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timedelta, tzinfo
from pathlib import Path

from dateutil import parser as date_parser
from dateutil import tz

from dose_tracker.frequency import parse_frequency
from dose_tracker.model import Prescription
from dose_tracker.prescriptions import (
    estimate_doses_today,
    group_prescriptions,
    is_ending_soon,
    needs_refill,
)
from dose_tracker.report import render_summary
from dose_tracker.storage import (
    MAX_GRACE_PERIOD_HOURS,
    MAX_PREVIEW_DAYS,
    AppConfig,
    SQLiteStore,
)
from dose_tracker.tracker import DoseStateTracker, SkipReasonRequiredError

_LOGGER = logging.getLogger(__name__)

_DEFAULT_DB = Path.home() / ".dose_tracker" / "dose_tracker.sqlite3"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Grilla de dosis de recetas para mascotas."
    )
    parser.add_argument(
        "--db",
        default=str(_DEFAULT_DB),
        help="Base SQLite (default: ~/.dose_tracker/dose_tracker.sqlite3).",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log de depuración."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Guardar una receta.")
    add.add_argument("--id", required=True, help="Identificador de la receta.")
    add.add_argument("--title", required=True, help="Medicamento / título.")
    add.add_argument(
        "--frequency", required=True, help='Ej: "Every 12 hours", "Twice daily".'
    )
    add.add_argument("--start", required=True, help="Inicio (fecha u hora ISO).")
    add.add_argument("--end", default=None, help="Fin opcional (fecha u hora ISO).")
    add.add_argument("--pet", default=None, help="Nombre de la mascota.")

    sub.add_parser("list", help="Listar recetas activas y completadas.")

    schedule = sub.add_parser("schedule", help="Ver la grilla de una receta.")
    schedule.add_argument("prescription_id")
    schedule.add_argument(
        "--limit", type=int, default=20, help="Filas a mostrar (default: 20)."
    )

    give = sub.add_parser("give", help="Marcar una dosis como dada.")
    give.add_argument("prescription_id")
    give.add_argument("time", help="Hora programada de la dosis.")
    give.add_argument("--by", default=None, help="Quién la dio.")
    give.add_argument("--notes", default=None, help="Observaciones.")

    skip = sub.add_parser("skip", help="Saltear una dosis.")
    skip.add_argument("prescription_id")
    skip.add_argument("time", help="Hora programada de la dosis.")
    skip.add_argument("--reason", default="", help="Motivo (obligatorio).")

    config = sub.add_parser("config", help="Ver o cambiar la configuración.")
    config.add_argument("--timezone", default=None, help="Zona IANA.")
    config.add_argument(
        "--grace-hours", type=float, default=None, help="Tolerancia antes de atrasada."
    )
    config.add_argument(
        "--preview-days",
        type=int,
        default=None,
        help="Días a mostrar en recetas sin fin.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the dose tracker CLI.

    Returns:
        Exit code (0 on success).
    """
    ns = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    store = SQLiteStore(Path(ns.db).expanduser().resolve())
    app_config = store.load_config()
    local_tz = _resolve_tz(app_config.timezone)

    try:
        if ns.command == "add":
            return _cmd_add(ns, store, local_tz)
        if ns.command == "list":
            return _cmd_list(store, local_tz)
        if ns.command == "schedule":
            return _cmd_schedule(ns, store, app_config, local_tz)
        if ns.command == "give":
            return _cmd_give(ns, store, app_config, local_tz)
        if ns.command == "skip":
            return _cmd_skip(ns, store, app_config, local_tz)
        return _cmd_config(ns, store, app_config)
    except SkipReasonRequiredError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except KeyError as exc:
        print(f"Error: receta inexistente {exc}", file=sys.stderr)
        return 1


def _cmd_add(ns: argparse.Namespace, store: SQLiteStore, local_tz: tzinfo) -> int:
    prescription = Prescription(
        id=ns.id,
        title=ns.title,
        frequency=ns.frequency,
        start_date=_parse_instant(ns.start, local_tz),
        end_date=_parse_instant(ns.end, local_tz) if ns.end else None,
        pet_name=ns.pet,
    )
    store.save_prescription(prescription)
    print(f"OK: receta {prescription.id} guardada")
    if parse_frequency(prescription.frequency) is None:
        print("Aviso: frecuencia no reconocida, no hay grilla de dosis.")
    return 0


def _cmd_list(store: SQLiteStore, local_tz: tzinfo) -> int:
    now = datetime.now(tz=local_tz)
    groups = group_prescriptions(store.list_prescriptions(), now)

    print(f"Activas ({len(groups.active)}):")
    for rx in groups.active:
        flags = []
        if needs_refill(rx, now):
            flags.append("reponer")
        if is_ending_soon(rx, now):
            flags.append("por terminar")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        pet = f" ({rx.pet_name})" if rx.pet_name else ""
        print(f"  {rx.id}: {rx.title}{pet} - {rx.frequency}{suffix}")
    print(f"Completadas ({len(groups.completed)}):")
    for rx in groups.completed:
        print(f"  {rx.id}: {rx.title} - {rx.frequency}")
    print(f"Dosis hoy (estimado): {estimate_doses_today(groups.active)}")
    return 0


def _cmd_schedule(
    ns: argparse.Namespace,
    store: SQLiteStore,
    app_config: AppConfig,
    local_tz: tzinfo,
) -> int:
    prescription = store.get_prescription(ns.prescription_id)
    tracker = _tracker(store, app_config, local_tz)
    summary = tracker.summary(prescription)
    print(f"{prescription.title} - {prescription.frequency}")
    print(render_summary(summary, local_tz=local_tz, limit=ns.limit))
    return 0


def _cmd_give(
    ns: argparse.Namespace,
    store: SQLiteStore,
    app_config: AppConfig,
    local_tz: tzinfo,
) -> int:
    prescription = store.get_prescription(ns.prescription_id)
    scheduled = _parse_instant(ns.time, local_tz)
    tracker = _tracker(store, app_config, local_tz)
    tracker.mark_given(prescription.id, scheduled, actor=ns.by, notes=ns.notes)
    print(f"OK: dosis {scheduled.isoformat()} marcada como dada")
    return 0


def _cmd_skip(
    ns: argparse.Namespace,
    store: SQLiteStore,
    app_config: AppConfig,
    local_tz: tzinfo,
) -> int:
    prescription = store.get_prescription(ns.prescription_id)
    scheduled = _parse_instant(ns.time, local_tz)
    tracker = _tracker(store, app_config, local_tz)
    tracker.skip_dose(prescription.id, scheduled, ns.reason)
    print(f"OK: dosis {scheduled.isoformat()} salteada")
    return 0


def _cmd_config(
    ns: argparse.Namespace, store: SQLiteStore, app_config: AppConfig
) -> int:
    updated = app_config
    if ns.timezone is not None:
        if tz.gettz(ns.timezone) is None:
            print(f"Error: zona horaria desconocida {ns.timezone}", file=sys.stderr)
            return 2
        updated = replace(updated, timezone=ns.timezone)
    if ns.grace_hours is not None:
        if not 0 < ns.grace_hours <= MAX_GRACE_PERIOD_HOURS:
            print(
                f"Error: --grace-hours debe estar entre 0 y {MAX_GRACE_PERIOD_HOURS}",
                file=sys.stderr,
            )
            return 2
        updated = replace(updated, grace_period_hours=ns.grace_hours)
    if ns.preview_days is not None:
        if not 0 < ns.preview_days <= MAX_PREVIEW_DAYS:
            print(
                f"Error: --preview-days debe estar entre 1 y {MAX_PREVIEW_DAYS}",
                file=sys.stderr,
            )
            return 2
        updated = replace(updated, preview_days=ns.preview_days)
    if updated != app_config:
        store.save_config(updated)
        _LOGGER.info("Config updated: %s", updated)
    print(f"timezone={updated.timezone}")
    print(f"grace_period_hours={updated.grace_period_hours}")
    print(f"preview_days={updated.preview_days}")
    return 0


def _tracker(
    store: SQLiteStore, app_config: AppConfig, local_tz: tzinfo
) -> DoseStateTracker:
    return DoseStateTracker(
        store,
        clock=lambda: datetime.now(tz=local_tz),
        grace_period=timedelta(hours=app_config.grace_period_hours),
        preview_days=app_config.preview_days,
    )


def _resolve_tz(name: str) -> tzinfo:
    resolved = tz.gettz(name)
    if resolved is None:
        _LOGGER.warning("Unknown timezone %r, using UTC", name)
        return tz.UTC
    return resolved


def _parse_instant(raw: str, local_tz: tzinfo) -> datetime:
    """Parse user input; naive values are read in the configured zone."""
    parsed = date_parser.parse(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=local_tz)
    return parsed
