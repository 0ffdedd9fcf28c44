"""Session state and the user actions that replace it.

Every handler takes the current :class:`AppState` and returns a new one;
nothing is mutated in place. Failures of an action are caught here and
stored in ``AppState.error`` so the session survives them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path

from bordereau_export.document import (
    DEFAULT_TEMPLATE,
    DOCX_MIME,
    build_context,
    build_description_entries,
    load_template,
    render_document,
)
from bordereau_export.emit import EmitResult, Emitter, export_file_name
from bordereau_export.errors import (
    ExporterError,
    InvalidColumnMap,
    InvalidSelection,
    SaveCanceled,
)
from bordereau_export.io import load_grid
from bordereau_export.models import Dataset, ExportReport, ResolvedColumns, Selection
from bordereau_export.pipeline import NumberLocale, build_dataset, resolve_columns
from bordereau_export.spreadsheet import XLSX_MIME, build_spreadsheet_rows, render_workbook


@dataclass(frozen=True)
class ExportOutcome:
    report: ExportReport
    result: EmitResult


@dataclass(frozen=True)
class AppState:
    dataset: Dataset | None = None
    selection: Selection = field(default_factory=Selection)
    error: ExporterError | None = None
    last_export: ExportOutcome | None = None


def _guarded(state: AppState, action: Callable[[], AppState]) -> AppState:
    try:
        return action()
    except ExporterError as exc:
        return replace(state, error=exc, last_export=None)


def _require_dataset(state: AppState) -> Dataset:
    if state.dataset is None:
        raise InvalidSelection("No file imported yet.")
    return state.dataset


def _resolve(dataset: Dataset, overrides: Mapping[str, str] | None) -> ResolvedColumns:
    try:
        return resolve_columns(dataset.keys, overrides)
    except ValueError as exc:
        raise InvalidColumnMap(str(exc)) from exc


def _emit(emitter: Emitter, payload: bytes, name: str, mime_type: str) -> EmitResult:
    result = emitter.emit(payload, name, mime_type)
    if not result.saved:
        raise SaveCanceled(f"Save canceled; {name} was not written.")
    return result


# ── Import / selection ───────────────────────────────────────────


def import_file(state: AppState, path: Path, *, delimiter: str | None = None) -> AppState:
    """Load *path* and replace the dataset; the selection starts empty again."""

    def _action() -> AppState:
        grid = load_grid(path, delimiter)
        return AppState(dataset=build_dataset(grid, source_name=Path(path).name))

    return _guarded(state, _action)


def select_rows(state: AppState, indices: Iterable[int]) -> AppState:
    def _action() -> AppState:
        dataset = _require_dataset(state)
        selection = Selection.of(indices, len(dataset))
        return replace(state, selection=selection, error=None)

    return _guarded(state, _action)


def select_all(state: AppState) -> AppState:
    size = len(state.dataset) if state.dataset is not None else 0
    return select_rows(state, range(size))


def toggle_row(state: AppState, index: int) -> AppState:
    def _action() -> AppState:
        dataset = _require_dataset(state)
        Selection.of([index], len(dataset))
        return replace(state, selection=state.selection.toggle(index), error=None)

    return _guarded(state, _action)


def dismiss_error(state: AppState) -> AppState:
    return replace(state, error=None)


# ── Exports ──────────────────────────────────────────────────────


def export_spreadsheet(
    state: AppState,
    emitter: Emitter,
    *,
    overrides: Mapping[str, str] | None = None,
    locale: NumberLocale = "auto",
) -> AppState:
    """Write the calculation-only workbook for the current selection."""

    def _action() -> AppState:
        dataset = _require_dataset(state)
        records = state.selection.pick(dataset)
        columns = _resolve(dataset, overrides)
        report = ExportReport(kind="spreadsheet")
        rows = build_spreadsheet_rows(records, columns, locale=locale, report=report)
        name = export_file_name(dataset.source_name, "export_", ".xlsx", "project_export.xlsx")
        result = _emit(emitter, render_workbook(rows), name, XLSX_MIME)
        return replace(state, error=None, last_export=ExportOutcome(report, result))

    return _guarded(state, _action)


def export_document(
    state: AppState,
    emitter: Emitter,
    *,
    template_path: Path = DEFAULT_TEMPLATE,
    overrides: Mapping[str, str] | None = None,
    locale: NumberLocale = "auto",
) -> AppState:
    """Render the long descriptions of the current selection into the template."""

    def _action() -> AppState:
        dataset = _require_dataset(state)
        records = state.selection.pick(dataset)
        columns = _resolve(dataset, overrides)
        entries = build_description_entries(records, columns, locale=locale)
        report = ExportReport(
            kind="document",
            rows_selected=len(records),
            rows_exported=len(entries),
            fallback_fields=[f for f in columns.fallbacks if f in ("title", "description")],
            warnings=[
                f"Item {entry.id}: empty description"
                for entry in entries
                if not entry.description.strip()
            ],
        )
        payload = render_document(load_template(template_path), build_context(entries))
        name = export_file_name(
            dataset.source_name, "descriptions_", ".docx", "project_descriptions.docx"
        )
        result = _emit(emitter, payload, name, DOCX_MIME)
        return replace(state, error=None, last_export=ExportOutcome(report, result))

    return _guarded(state, _action)
