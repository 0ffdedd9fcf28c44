"""Header detection, row mapping, column resolution and numeric reconciliation.

Pure functions, no side effects.
"""

from __future__ import annotations

import math
import re
import unicodedata
from collections.abc import Iterable, Mapping, Sequence
from numbers import Real
from typing import Literal

from bordereau_export import ANCHOR_LABEL
from bordereau_export.errors import HeaderNotFound
from bordereau_export.models import (
    FIELDS,
    CellValue,
    Column,
    Dataset,
    ExportRow,
    RawGrid,
    Record,
    ResolvedColumns,
    cell_text,
)

NumberLocale = Literal["auto", "us", "eu"]

# ── Text normalisation ──────────────────────────────────────────

_WHITESPACE_RE = re.compile(r"\s+")
_DEGREE_RE = re.compile(r"\s*°\s*")


def normalize_text(value: object) -> str:
    """Canonical form used for every header/key comparison.

    Accents are stripped, case is folded, whitespace runs collapse to one
    space and the spacing around ``°`` is fixed, so ``"N° PRIX"``,
    ``"n°prix"`` and ``"N°  Prix"`` all become ``"n° prix"``. Non-string
    input yields ``""``.
    """
    if not isinstance(value, str):
        return ""
    text = value.replace("º", "°")
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower()
    text = _DEGREE_RE.sub("° ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


# ── Header detection / row mapping ──────────────────────────────


def detect_header_row(grid: RawGrid) -> int:
    """Return the index of the first row with a cell containing the anchor label."""
    for idx, row in enumerate(grid):
        if any(ANCHOR_LABEL in normalize_text(cell) for cell in row):
            return idx
    raise HeaderNotFound(
        f'Header row not found: no cell contains "N° Prix" ({len(grid)} rows scanned)'
    )


def _build_columns(header: Sequence[CellValue]) -> list[Column]:
    columns: list[Column] = []
    seen: set[str] = set()
    for idx, cell in enumerate(header):
        label = cell_text(cell)
        key = normalize_text(label) or f"col_{idx}"
        if key in seen:
            suffix = 1
            while f"{key}_{suffix}" in seen:
                suffix += 1
            key = f"{key}_{suffix}"
        seen.add(key)
        columns.append(Column(key=key, label=label or key))
    return columns


def _strip(value: CellValue) -> CellValue:
    return value.strip() if isinstance(value, str) else value


def map_rows(grid: RawGrid, header_row: int, *, source_name: str = "") -> Dataset:
    """Turn every row below *header_row* into a record keyed by normalized header.

    Missing trailing cells map to ``""``; all-blank records are dropped.
    Raises :class:`~bordereau_export.errors.EmptyDataset` if none remain.
    """
    columns = _build_columns(grid[header_row])
    records: list[Record] = []
    for row in grid[header_row + 1:]:
        record: Record = {
            col.key: _strip(row[idx]) if idx < len(row) else ""
            for idx, col in enumerate(columns)
        }
        if any(value != "" for value in record.values()):
            records.append(record)
    return Dataset(
        records=tuple(records),
        columns=tuple(columns),
        header_row=header_row,
        source_name=source_name,
    )


def build_dataset(grid: RawGrid, *, source_name: str = "") -> Dataset:
    return map_rows(grid, detect_header_row(grid), source_name=source_name)


# ── Column resolution ───────────────────────────────────────────

# Evaluated top to bottom; a key claimed by an earlier entry is not reused,
# so price/total markers must come before the broader unit marker.
COLUMN_MARKERS: tuple[tuple[str, str], ...] = (
    ("code", "n° prix"),
    ("title", "designation"),
    ("title", "titre"),
    ("quantity", "quantit"),
    ("quantity", "qte"),
    ("price", "p.u"),
    ("price", "prix unitaire"),
    ("total", "montant total h.t"),
    ("total", "motant"),
    ("total", "montant"),
    ("unit", "unite"),
    ("unit", "unit"),
    ("description", "descriptif"),
    ("description", "description"),
)

FALLBACK_LABELS: dict[str, str] = {
    "code": "n° prix",
    "title": "designation",
    "unit": "unite",
    "quantity": "quantite",
    "price": "p.u dh.ht",
    "total": "montant total ht",
    "description": "descriptif",
}


def resolve_columns(
    keys: Iterable[str], overrides: Mapping[str, str] | None = None
) -> ResolvedColumns:
    """Pick, for each semantic field, the record key that best matches it.

    *overrides* maps a field name to an explicit header and wins over the
    marker table. Fields without any match fall back to
    :data:`FALLBACK_LABELS`; they are listed in ``fallbacks`` and read as
    blank downstream.
    """
    keys = list(keys)
    by_normalized = {normalize_text(key): key for key in keys}
    resolved: dict[str, str] = {}
    claimed: set[str] = set()

    for field_name, header in (overrides or {}).items():
        if field_name not in FIELDS:
            raise ValueError(
                f"Unknown field {field_name!r} in column map. Use one of: {', '.join(FIELDS)}"
            )
        key = by_normalized.get(normalize_text(header))
        if key is None:
            raise ValueError(f"Column {header!r} mapped to {field_name!r} not found in sheet")
        resolved[field_name] = key
        claimed.add(key)

    for field_name, marker in COLUMN_MARKERS:
        if field_name in resolved:
            continue
        for key in keys:
            if key not in claimed and marker in normalize_text(key):
                resolved[field_name] = key
                claimed.add(key)
                break

    fallbacks = tuple(name for name in FIELDS if name not in resolved)
    for name in fallbacks:
        resolved[name] = FALLBACK_LABELS[name]
    return ResolvedColumns(**resolved, fallbacks=fallbacks)


# ── Numeric reconciliation ──────────────────────────────────────

_THOUSANDS_COMMA_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+$")
_THOUSANDS_DOT_RE = re.compile(r"^[+-]?\d{1,3}(\.\d{3})+$")
_CURRENCY_RE = re.compile(r"(?i)(?<![a-z])(?:dhs?|mad)(?![a-z])\.?|[\$€£]")


def _normalize_numeric_token(token: str, *, locale: NumberLocale) -> str:
    token = token.strip()
    token = re.sub(r"^\((.*)\)$", r"-\1", token)
    token = _CURRENCY_RE.sub("", token)
    token = re.sub(r"(?<=\d)\s+(?=\d)", "", token)
    token = token.replace("'", "").replace("_", "").strip()

    if token in {"", "-", "+"}:
        return ""
    if token.startswith("+"):
        token = token[1:]

    has_comma = "," in token
    has_dot = "." in token

    if locale == "us":
        if has_comma and (has_dot or _THOUSANDS_COMMA_RE.fullmatch(token)):
            return token.replace(",", "")
        return token

    if locale == "eu":
        if has_comma and has_dot:
            return token.replace(".", "").replace(",", ".")
        if has_comma:
            if token.count(",") == 1:
                return token.replace(",", ".")
            return token
        if has_dot and _THOUSANDS_DOT_RE.fullmatch(token):
            return token.replace(".", "")
        return token

    if has_comma and has_dot:
        if token.rfind(",") > token.rfind("."):
            return token.replace(".", "").replace(",", ".")
        return token.replace(",", "")

    if has_comma:
        if _THOUSANDS_COMMA_RE.fullmatch(token):
            return token.replace(",", "")
        if token.count(",") == 1:
            return token.replace(",", ".")
        return token

    if has_dot and _THOUSANDS_DOT_RE.fullmatch(token):
        return token.replace(".", "")

    return token


def parse_number(value: object, *, locale: NumberLocale = "auto") -> float | None:
    """Parse a cell as a number, or return ``None`` when it is blank or not numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Real):
        number = float(value)
    else:
        token = _normalize_numeric_token(str(value), locale=locale)
        if not token:
            return None
        try:
            number = float(token)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def reconcile_row(
    record: Mapping[str, CellValue],
    columns: ResolvedColumns,
    *,
    locale: NumberLocale = "auto",
    warnings: list[str] | None = None,
    label: str = "Row",
) -> ExportRow:
    """Project *record* onto the six calculation fields.

    Numeric cells are taken as they are; only text goes through *locale*.
    Unparsable quantity/price read as 0. The source total is kept whenever it
    parses, otherwise it is recomputed as ``quantity * price``. Non-blank
    values that fail to parse are reported into *warnings* when given.
    """

    def _number(field_name: str) -> float | None:
        raw = record.get(getattr(columns, field_name), "")
        number = parse_number(_strip(raw), locale=locale)
        shown = cell_text(raw)
        if number is None and shown and warnings is not None:
            fate = "recomputed" if field_name == "total" else "treated as 0"
            warnings.append(f"{label}: non-numeric {field_name} {shown!r} {fate}")
        return number

    quantity = _number("quantity") or 0.0
    price = _number("price") or 0.0
    total = _number("total")
    if total is None:
        total = quantity * price

    return ExportRow(
        code=cell_text(record.get(columns.code)),
        title=cell_text(record.get(columns.title)),
        unit=cell_text(record.get(columns.unit)),
        quantity=quantity,
        price=price,
        total=total,
    )
