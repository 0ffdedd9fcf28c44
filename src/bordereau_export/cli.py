"""CLI entry point for bordereau-export."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from bordereau_export import __version__
from bordereau_export.document import DEFAULT_TEMPLATE
from bordereau_export.emit import DirectoryEmitter
from bordereau_export.errors import (
    EmptyDataset,
    EmptySelection,
    ExporterError,
    InvalidColumnMap,
)
from bordereau_export.io import sha256_file, write_json
from bordereau_export.models import (
    FIELDS,
    CellValue,
    Dataset,
    ExportManifest,
    ExportReport,
    cell_text,
)
from bordereau_export.pipeline import normalize_text, parse_number, resolve_columns
from bordereau_export.session import (
    AppState,
    export_document,
    export_spreadsheet,
    import_file,
    select_all,
    select_rows,
)

app = typer.Typer(
    name="bexport",
    help="bordereau-export — Export selected work items to a clean sheet and a Word document.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

_PREVIEW_TEXT_WIDTH = 50


class NumberLocaleOption(str, Enum):
    auto = "auto"
    us = "us"
    eu = "eu"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"bordereau-export v{__version__}")
        raise typer.Exit()


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_column_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map field=Header`` pairs into ``{field: header}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise InvalidColumnMap(f"Invalid --map value: {item!r}  (expected field=Header)")
        field_name, header = item.split("=", 1)
        field_name = normalize_text(field_name)
        header = header.strip()
        if not field_name or not header:
            raise InvalidColumnMap(
                "--map entries must have non-empty field and header (field=Header)"
            )
        if field_name not in FIELDS:
            raise InvalidColumnMap(
                f"Unknown field {field_name!r} in --map. Use one of: {', '.join(FIELDS)}"
            )
        if field_name in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for field {field_name!r}")
        mapping[field_name] = header
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``field=Header`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise InvalidColumnMap(
            f"Profile not found: {profile} (expected lines like quantity=Qté)"
        )
    if profile.is_dir():
        raise InvalidColumnMap(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidColumnMap(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _parse_rows(raw: str) -> list[int]:
    """Parse ``"4,1,7"`` / ``"0,2,5-7"`` into ordered 0-based indices."""
    indices: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                first, last = (int(bound) for bound in part.split("-", 1))
                if first > last:
                    raise ValueError
                indices.extend(range(first, last + 1))
            else:
                indices.append(int(part))
        except ValueError as exc:
            raise typer.BadParameter(
                f"Invalid row selection {part!r} (expected e.g. 0,2,5-7)",
                param_hint="--rows",
            ) from exc
    return indices


def _truncate(text: str, width: int = _PREVIEW_TEXT_WIDTH) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[:width] + "..."


def _format_amount(raw: CellValue) -> str:
    number = parse_number(raw)
    return f"{number:,.2f}" if number is not None else cell_text(raw)


def _fail(exc: ExporterError) -> NoReturn:
    _err(str(exc))
    raise typer.Exit(code=exc.exit_code)


def _import_or_exit(input_file: Path, delimiter: str | None) -> tuple[AppState, Dataset]:
    state = import_file(AppState(), input_file, delimiter=delimiter)
    if state.error is not None:
        _fail(state.error)
    if state.dataset is None:
        _fail(EmptyDataset("No data found in the file."))
    return state, state.dataset


def _print_report(report: ExportReport, echo: Callable[..., None]) -> None:
    for name in report.fallback_fields:
        echo(f"  [yellow]![/yellow] No column found for {name}; exported blank")
    for warning in report.warnings:
        echo(f"  [yellow]![/yellow] {warning}")


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    state: AppState,
    created_at: str,
    outputs: list[str],
    reports: list[ExportReport],
    error: str | None = None,
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(input_file)
    except OSError:
        pass

    dataset = state.dataset
    manifest = ExportManifest(
        version=__version__,
        input_path=str(input_file.resolve()),
        sha256=sha256,
        created_at_utc=created_at,
        header_row=dataset.header_row if dataset is not None else 0,
        rows_in=len(dataset) if dataset is not None else 0,
        selected_rows=list(state.selection.indices),
        outputs=outputs,
        reports=reports,
        status="failed" if error is not None else "success",
        error_message=error or "",
    )
    return write_json(out_dir / "export_manifest.json", manifest.to_dict())


# ── Shared options ───────────────────────────────────────────────

_INPUT_OPTION = typer.Option(
    ..., "--input", "-i",
    help="Path to the .xlsx, .xls or .csv price schedule.",
    exists=True, readable=True, dir_okay=False,
)
_DELIMITER_OPTION = typer.Option(
    None, "--delimiter",
    help="CSV delimiter (guessed from the file when omitted).",
)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """bordereau-export CLI."""


# ── inspect command ──────────────────────────────────────────────


@app.command()
def inspect(
    input_file: Path = _INPUT_OPTION,
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Column override: field=Header (e.g. --map quantity=Qté).",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing column overrides (field=Header lines).",
    ),
    delimiter: str | None = _DELIMITER_OPTION,
    limit: int = typer.Option(50, "--limit", min=1, help="Maximum rows to preview."),
) -> None:
    """Import a file and show its rows with the index used by --rows."""
    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []))
    except InvalidColumnMap as exc:
        _fail(exc)

    _, dataset = _import_or_exit(input_file, delimiter)
    try:
        columns = resolve_columns(dataset.keys, mapping)
    except ValueError as exc:
        _fail(InvalidColumnMap(str(exc)))

    console.print(Panel(
        f"[bold]{input_file.name}[/bold]\n"
        f"Header row: {dataset.header_row}   Rows: {len(dataset)}   "
        f"Columns: {len(dataset.columns)}",
        title="File Imported", border_style="green",
    ))

    resolved = RichTable(title="Resolved Columns", show_lines=False)
    resolved.add_column("Field", style="bold")
    resolved.add_column("Header")
    for name, key in columns.as_dict().items():
        if name in columns.fallbacks:
            resolved.add_row(name, f"[yellow]{key} (not found)[/yellow]")
        else:
            resolved.add_row(name, dataset.label_for(key))
    console.print(resolved)

    tbl = RichTable(title=f"All Items ({len(dataset)})", show_lines=False)
    tbl.add_column("#", justify="right", style="dim")
    for title in ("N° Prix", "Désignation", "Unité", "Quantité", "P.U", "Montant", "Descriptif"):
        tbl.add_column(title, justify="right" if title in ("Quantité", "P.U", "Montant") else "left")
    for idx, record in enumerate(dataset.records[:limit]):
        tbl.add_row(
            str(idx),
            cell_text(record.get(columns.code)),
            _truncate(cell_text(record.get(columns.title))),
            cell_text(record.get(columns.unit)),
            _format_amount(record.get(columns.quantity, "")),
            _format_amount(record.get(columns.price, "")),
            _format_amount(record.get(columns.total, "")),
            _truncate(cell_text(record.get(columns.description))),
        )
    console.print(tbl)
    if len(dataset) > limit:
        console.print(f"  … {len(dataset) - limit} more rows (use --limit)")


# ── export commands ──────────────────────────────────────────────


def _run_exports(
    *,
    input_file: Path,
    rows: str | None,
    select_everything: bool,
    out_dir: Path,
    col_map: list[str] | None,
    profile: Path | None,
    number_locale: NumberLocaleOption,
    template: Path,
    delimiter: str | None,
    force: bool,
    quiet: bool,
    spreadsheet: bool,
    document: bool,
) -> None:
    echo = _printer(quiet)
    created_at = _utcnow_iso()
    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
    except InvalidColumnMap as exc:
        _fail(exc)
    indices = _parse_rows(rows) if rows else []

    if not quiet:
        console.print(Panel(
            f"[bold]bordereau-export[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Export Start", border_style="blue",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")
        if mapping:
            console.print(f"  Column map: {mapping}")

    # ── Import ───────────────────────────────────────────────────
    echo("[blue]>[/blue] Importing …")
    state, dataset = _import_or_exit(input_file, delimiter)
    echo(f"  {len(dataset)} items (header at row {dataset.header_row})")

    # ── Select ───────────────────────────────────────────────────
    state = select_all(state) if select_everything else select_rows(state, indices)
    if state.error is not None:
        _fail(state.error)
    if not state.selection:
        # Nothing is written for an empty selection, not even the manifest.
        _fail(EmptySelection("No rows selected. Please select at least one row."))
    echo(f"  {len(state.selection)} items selected")

    # ── Export ───────────────────────────────────────────────────
    emitter = DirectoryEmitter(
        out_dir,
        confirm_overwrite=None if force else (
            lambda path: typer.confirm(f"{path} already exists. Overwrite?", default=False)
        ),
    )
    outputs: list[str] = []
    reports: list[ExportReport] = []
    steps: list[tuple[str, Callable[[AppState], AppState]]] = []
    if spreadsheet:
        steps.append(("spreadsheet", lambda s: export_spreadsheet(
            s, emitter, overrides=mapping, locale=number_locale.value,
        )))
    if document:
        steps.append(("Word document", lambda s: export_document(
            s, emitter, template_path=template, overrides=mapping,
            locale=number_locale.value,
        )))

    for label, step in steps:
        echo(f"[blue]>[/blue] Writing {label} …")
        try:
            state = step(state)
        except (typer.Exit, typer.Abort):
            raise
        except Exception as exc:
            message = f"Unexpected internal error: {exc}"
            manifest_path = _write_manifest(
                out_dir, input_file, state, created_at, outputs, reports, error=message
            )
            _err(message)
            console.print(f"  Manifest -> {manifest_path}")
            raise typer.Exit(code=1)
        outcome = state.last_export
        if state.error is not None or outcome is None:
            error = state.error or ExporterError(f"{label.capitalize()} export wrote nothing.")
            manifest_path = _write_manifest(
                out_dir, input_file, state, created_at, outputs, reports, error=str(error),
            )
            console.print(f"  Manifest -> {manifest_path}")
            _fail(error)
        reports.append(outcome.report)
        outputs.append(str(outcome.result.location))
        _print_report(outcome.report, echo)
        echo(f"  {label.capitalize()} -> {outcome.result.location}")

    manifest_path = _write_manifest(out_dir, input_file, state, created_at, outputs, reports)
    echo(f"  Manifest -> {manifest_path}")

    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {len(state.selection)} items -> {', '.join(outputs)}",
            title="Export Complete", border_style="green",
        ))


def _export_command(*, spreadsheet: bool, document: bool, doc: str) -> Callable[..., None]:
    def command(
        input_file: Path = _INPUT_OPTION,
        rows: str | None = typer.Option(
            None, "--rows", "-r",
            help="0-based row indices in export order, e.g. 4,1,7 or 0,2,5-7.",
        ),
        select_everything: bool = typer.Option(
            False, "--all", "-a", help="Select every row in file order.",
        ),
        out_dir: Path = typer.Option(
            Path("output"), "--out-dir", "-o", help="Output directory.",
        ),
        col_map: list[str] | None = typer.Option(
            None, "--map", "-m",
            help="Column override: field=Header (e.g. --map quantity=Qté).",
        ),
        profile: Path | None = typer.Option(
            None, "--profile",
            help="Profile file containing column overrides (field=Header lines).",
        ),
        number_locale: NumberLocaleOption = typer.Option(
            NumberLocaleOption.auto, "--number-locale",
            help="Numeric parsing mode: auto, us, or eu.",
        ),
        template: Path = typer.Option(
            DEFAULT_TEMPLATE, "--template", "-t", help="Word template (.docx).",
        ),
        delimiter: str | None = _DELIMITER_OPTION,
        force: bool = typer.Option(
            False, "--force", "-f", help="Overwrite existing outputs without asking.",
        ),
        quiet: bool = typer.Option(
            False, "--quiet", "-q", help="Suppress informational output.",
        ),
    ) -> None:
        _run_exports(
            input_file=input_file,
            rows=rows,
            select_everything=select_everything,
            out_dir=out_dir,
            col_map=col_map,
            profile=profile,
            number_locale=number_locale,
            template=template,
            delimiter=delimiter,
            force=force,
            quiet=quiet,
            spreadsheet=spreadsheet,
            document=document,
        )

    command.__doc__ = doc
    return command


app.command(name="excel")(_export_command(
    spreadsheet=True, document=False,
    doc="Export the selected rows to a calculation-only spreadsheet.",
))
app.command(name="word")(_export_command(
    spreadsheet=False, document=True,
    doc="Export the descriptions of the selected rows to a Word document.",
))
app.command(name="export")(_export_command(
    spreadsheet=True, document=True,
    doc="Write both the spreadsheet and the Word document.",
))
