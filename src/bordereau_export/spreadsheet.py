"""Spreadsheet export — calculation columns only, re-sequenced codes."""

from __future__ import annotations

import io
from collections.abc import Sequence

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from bordereau_export import EXPORT_COLUMNS
from bordereau_export.errors import EmptySelection
from bordereau_export.models import ExportReport, ExportRow, Record, ResolvedColumns
from bordereau_export.pipeline import NumberLocale, reconcile_row

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE = "Selected Items"

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)
VALUE_FONT = Font(name="Calibri", size=11)
_THIN = Side(style="thin", color="BFBFBF")
THIN_BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)

AMOUNT_FMT = "0.00"

# Column position (1-based) → number format for data rows
_COL_FORMATS: dict[int, str] = {4: AMOUNT_FMT, 5: AMOUNT_FMT, 6: AMOUNT_FMT}

_MAX_COL_WIDTH = 60


# ── Assembly ─────────────────────────────────────────────────────


def build_spreadsheet_rows(
    records: Sequence[Record],
    columns: ResolvedColumns,
    *,
    locale: NumberLocale = "auto",
    report: ExportReport | None = None,
) -> list[ExportRow]:
    """Reconcile the selected *records* and number them 1..n in selection order.

    The source code value is discarded. Raises
    :class:`~bordereau_export.errors.EmptySelection` when nothing is selected.
    """
    if not records:
        raise EmptySelection("No rows selected. Please select at least one row.")

    warnings = report.warnings if report is not None else None
    rows: list[ExportRow] = []
    for position, record in enumerate(records, start=1):
        row = reconcile_row(
            record, columns, locale=locale, warnings=warnings, label=f"Item {position}"
        )
        rows.append(
            ExportRow(
                code=position,
                title=row.title,
                unit=row.unit,
                quantity=row.quantity,
                price=row.price,
                total=row.total,
            )
        )

    if report is not None:
        report.rows_selected = len(records)
        report.rows_exported = len(rows)
        # The long description is not part of this export.
        report.fallback_fields = [
            name for name in columns.fallbacks if name != "description"
        ]
    return rows


# ── Rendering ────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=ws.max_row, min_col=c_idx, max_col=c_idx):
            cell = row[0]
            value = cell.value
            text = f"{value:.2f}" if isinstance(value, float) else str(value or "")
            width = max(width, len(text))
        ws.column_dimensions[letter].width = min(width + 4, _MAX_COL_WIDTH)


def render_workbook(rows: Sequence[ExportRow]) -> bytes:
    """Return the ``.xlsx`` bytes of a single styled sheet holding *rows*."""
    wb = Workbook()
    ws = wb.active
    if ws is None:
        ws = wb.create_sheet()
    ws.title = SHEET_TITLE

    for c_idx, title in enumerate(EXPORT_COLUMNS, 1):
        ws.cell(row=1, column=c_idx, value=title)
    _style_header(ws, len(EXPORT_COLUMNS))

    for r_idx, row in enumerate(rows, 2):
        for c_idx, val in enumerate(row.as_cells(), 1):
            if isinstance(val, str):
                val = ILLEGAL_CHARACTERS_RE.sub("", val)
            cell = ws.cell(row=r_idx, column=c_idx, value=val)
            if isinstance(val, str):
                # Stored as text as-is; a leading "=" must not become a formula.
                cell.data_type = "s"
            cell.font = VALUE_FONT
            cell.border = THIN_BORDER
            fmt = _COL_FORMATS.get(c_idx)
            if fmt:
                cell.number_format = fmt
                cell.alignment = Alignment(horizontal="right")
            elif c_idx == 2:
                cell.alignment = Alignment(wrap_text=True, vertical="top")

    ws.freeze_panes = "A2"
    _auto_width(ws)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
