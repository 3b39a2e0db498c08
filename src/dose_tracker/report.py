"""Tabla de dosis para vista previa en terminal."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, tzinfo

import pandas as pd

from dose_tracker.model import DoseView, ScheduleSummary

VIEW_COLUMNS = ["scheduled_time", "status", "next_dose_in", "given_time", "skip_reason"]

_HEADER_MAP: dict[str, str] = {
    "scheduled_time": "Scheduled",
    "status": "Status",
    "next_dose_in": "In",
    "given_time": "Given at",
    "skip_reason": "Skip reason",
}


def views_to_frame(views: Sequence[DoseView]) -> pd.DataFrame:
    """Convert dose views to a DataFrame ordered by scheduled time."""
    rows = [
        {
            "scheduled_time": v.scheduled_time,
            "status": v.status.value,
            "next_dose_in": v.next_dose_in,
            "given_time": v.given_time,
            "skip_reason": v.skip_reason,
        }
        for v in views
    ]
    df = pd.DataFrame(rows, columns=VIEW_COLUMNS)
    if df.empty:
        return df
    return df.sort_values("scheduled_time", kind="stable").reset_index(drop=True)


def status_counts(views: Sequence[DoseView]) -> dict[str, int]:
    """Number of views per status value."""
    df = views_to_frame(views)
    if df.empty:
        return {}
    counts = df["status"].value_counts()
    return {str(k): int(v) for k, v in counts.items()}


def render_summary(
    summary: ScheduleSummary,
    *,
    local_tz: tzinfo | None = None,
    limit: int | None = None,
) -> str:
    """Render a schedule summary as plain text."""
    if not summary.views:
        return "No dosage schedule available"

    lines: list[str] = []
    if summary.next_dose is not None:
        lines.append(
            f"Next dose: {_format_preview_value(summary.next_dose, local_tz)}"
            f" (in {summary.next_dose_in})"
        )
    else:
        lines.append("No upcoming doses scheduled")
    if summary.remaining_doses is not None:
        lines.append(f"Remaining doses: {summary.remaining_doses}")
    lines.append(f"Due today: {summary.doses_due_today}")

    df = views_to_frame(summary.views)
    if limit is not None:
        df = df.head(limit)
    display_df = _display_frame(df, local_tz).rename(columns=_HEADER_MAP)
    lines.append("")
    lines.append(display_df.to_string(index=False, max_colwidth=28))
    return "\n".join(lines)


def _display_frame(df: pd.DataFrame, local_tz: tzinfo | None) -> pd.DataFrame:
    """Prepare a string-renderable DataFrame for aligned preview."""
    if df.empty:
        return df.copy()
    out = df.copy()
    for col in out.columns:
        out[col] = out[col].map(lambda value: _format_preview_value(value, local_tz))
    return out


def _format_preview_value(value: object, local_tz: tzinfo | None = None) -> str:
    """Format preview values without NaN/NaT."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        if local_tz is not None and value.tzinfo is not None:
            value = value.astimezone(local_tz)
        return value.strftime("%a %d/%m/%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return str(value)
