"""Spreadsheet export of the planner matrix, one column per calendar day."""

from __future__ import annotations

import io
import logging
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional

import pandas as pd
from openpyxl.styles import Alignment, Font
from sqlalchemy.orm import Session

from crm_scheduler.config import ExportConfig
from crm_scheduler.domain.models import AssignmentStatus
from crm_scheduler.errors import BadRequest
from crm_scheduler.timerange import days_between, local_day

from .planner_matrix import BY_WORKERS, MODES, MatrixRow, PlannerMatrixBuilder

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    AssignmentStatus.ACTIVE: "Active",
    AssignmentStatus.ARCHIVED: "Archived",
}

DATE_FORMAT = "%d.%m.%Y"


def _local_time(value: datetime, offset_hours: int) -> str:
    return (value + timedelta(hours=offset_hours)).strftime("%H:%M")


def build_day_cells(row: MatrixRow, days: List, offset_hours: int) -> Dict:
    """Map each local day of the row to newline-joined "HH:MM–HH:MM (Status)" lines."""
    lines: Dict = {}
    first, last = days[0], days[-1]
    for slot in row.slots:
        label = STATUS_LABELS.get(slot.status, slot.status.value)
        for shift in slot.shifts:
            day = local_day(shift.starts_at, offset_hours)
            if day < first or day > last:
                continue
            text = (
                f"{_local_time(shift.starts_at, offset_hours)}–"
                f"{_local_time(shift.ends_at, offset_hours)} ({label})"
            )
            lines.setdefault(day, []).append(text)
    return {day: "\n".join(entries) for day, entries in lines.items()}


def build_export_frame(
    session: Session,
    range_from: datetime,
    range_to: datetime,
    mode: str,
    cfg: ExportConfig,
    user_id: Optional[str] = None,
    org_id: Optional[str] = None,
    status: Optional[AssignmentStatus] = None,
) -> pd.DataFrame:
    """
    Build the day-columned table for the export.

    The range is widened to whole local days; shifts are bucketed by their
    start in the fixed local offset from the config.
    """
    if mode not in MODES:
        raise BadRequest(f"Unknown planner mode: {mode}", field="mode")

    offset = cfg.utc_offset_hours
    first_day = local_day(range_from, offset)
    last_day = local_day(range_to, offset)
    if first_day > last_day:
        raise BadRequest("from must not be after to", field="to")
    days = days_between(first_day, last_day)

    # Whole local days, expressed back in UTC for the query
    query_from = datetime.combine(first_day, time.min) - timedelta(hours=offset)
    query_to = datetime.combine(last_day, time.max) - timedelta(hours=offset)

    rows = PlannerMatrixBuilder(session).collect_rows(
        mode, query_from, query_to, user_id=user_id, org_id=org_id, status=status
    )

    label_column = "Worker" if mode == BY_WORKERS else "Workplace"
    day_columns = [day.strftime(DATE_FORMAT) for day in days]
    records = []
    for row in rows:
        cells = build_day_cells(row, days, offset)
        record = {label_column: row.title, "Details": row.subtitle or ""}
        for day, column in zip(days, day_columns):
            record[column] = cells.get(day, "")
        records.append(record)

    return pd.DataFrame(records, columns=[label_column, "Details"] + day_columns)


def export_planner_matrix(
    session: Session,
    range_from: datetime,
    range_to: datetime,
    mode: str,
    cfg: Optional[ExportConfig] = None,
    fmt: Optional[str] = None,
    **filters,
) -> bytes:
    """
    Render the planner matrix as XLSX (default) or CSV bytes.

    Args:
        session: Database session
        range_from: Range start (UTC)
        range_to: Range end (UTC)
        mode: "byWorkers" or "byWorkplaces"
        cfg: Export settings (offset, sheet name, default format)
        fmt: "xlsx" or "csv"; overrides ``cfg.format``
        **filters: user_id, org_id, status

    Returns:
        Encoded spreadsheet
    """
    cfg = cfg or ExportConfig()
    fmt = fmt or cfg.format
    df = build_export_frame(session, range_from, range_to, mode, cfg, **filters)

    if fmt == "csv":
        data = df.to_csv(index=False).encode("utf-8")
    elif fmt == "xlsx":
        data = _to_xlsx(df, cfg.sheet_name, range_from, range_to, cfg.utc_offset_hours)
    else:
        raise BadRequest(f"Unsupported export format: {fmt}", field="format")

    logger.info("Exported planner matrix: %d row(s), %d byte(s), %s", len(df), len(data), fmt)
    return data


def _to_xlsx(df: pd.DataFrame, sheet_name: str, range_from: datetime, range_to: datetime, offset: int) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False, startrow=1)
        sheet = writer.sheets[sheet_name]

        width = max(len(df.columns), 1)
        sheet.merge_cells(start_row=1, start_column=1, end_row=1, end_column=width)
        period = sheet.cell(row=1, column=1)
        period.value = (
            f"Period: {local_day(range_from, offset).strftime(DATE_FORMAT)}"
            f" - {local_day(range_to, offset).strftime(DATE_FORMAT)}"
        )
        period.font = Font(bold=True)
        sheet.freeze_panes = "A3"

        for index, column in enumerate(df.columns, start=1):
            letter = sheet.cell(row=2, column=index).column_letter
            sheet.column_dimensions[letter].width = 40 if index <= 2 else 18
            if index > 2:
                for cell in sheet[letter][2:]:
                    cell.alignment = Alignment(vertical="top", horizontal="left", wrap_text=True)

    return buffer.getvalue()
