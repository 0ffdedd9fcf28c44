"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any

from bordereau_export.errors import EmptyDataset, InvalidSelection

# Text cells stay text; numbers typed into a workbook keep their numeric value.
CellValue = str | int | float
RawGrid = tuple[tuple[CellValue, ...], ...]
Record = dict[str, CellValue]

FIELDS: tuple[str, ...] = (
    "code",
    "title",
    "unit",
    "quantity",
    "price",
    "total",
    "description",
)


def cell_text(value: CellValue | None) -> str:
    """Display text of a cell: text is stripped, numbers use their shortest form."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value)


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


# ── Imported data ────────────────────────────────────────────────


@dataclass(frozen=True)
class Column:
    """One header cell: normalized lookup key plus the text shown to users."""

    key: str
    label: str


@dataclass(frozen=True)
class Dataset:
    """Records mapped from one imported sheet, in source row order."""

    records: tuple[Record, ...]
    columns: tuple[Column, ...] = ()
    header_row: int = 0
    source_name: str = ""

    def __post_init__(self) -> None:
        if not self.records:
            raise EmptyDataset("No data found in the file.")

    def __len__(self) -> int:
        return len(self.records)

    @property
    def keys(self) -> list[str]:
        """Key set of the first record; the schema is assumed homogeneous."""
        return list(self.records[0])

    def label_for(self, key: str) -> str:
        for column in self.columns:
            if column.key == key:
                return column.label
        return key


@dataclass(frozen=True)
class Selection:
    """Ordered, duplicate-free dataset indices picked by the user."""

    indices: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        cleaned: list[int] = []
        for idx in self.indices:
            value = _to_non_negative_int(idx, "selection index")
            if value not in cleaned:
                cleaned.append(value)
        object.__setattr__(self, "indices", tuple(cleaned))

    @classmethod
    def of(cls, indices: Iterable[int], size: int) -> Selection:
        """Build a selection, rejecting indices outside ``range(size)``."""
        selection = cls(tuple(indices))
        out_of_range = [idx for idx in selection.indices if idx >= size]
        if out_of_range:
            bad = ", ".join(str(idx) for idx in out_of_range)
            raise InvalidSelection(
                f"Row index out of range: {bad} (dataset has {size} rows, 0-{size - 1})"
            )
        return selection

    def __len__(self) -> int:
        return len(self.indices)

    def __contains__(self, index: object) -> bool:
        return index in self.indices

    def toggle(self, index: int) -> Selection:
        if index in self.indices:
            return Selection(tuple(i for i in self.indices if i != index))
        return Selection((*self.indices, index))

    def pick(self, dataset: Dataset) -> list[Record]:
        """Return the selected records, in selection order."""
        return [dataset.records[idx] for idx in self.indices]


# ── Export projections ───────────────────────────────────────────


@dataclass(frozen=True)
class ResolvedColumns:
    """Semantic field → actual record key, chosen once per export."""

    code: str
    title: str
    unit: str
    quantity: str
    price: str
    total: str
    description: str
    fallbacks: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in FIELDS}


@dataclass(frozen=True)
class ExportRow:
    code: int | str
    title: str
    unit: str
    quantity: float
    price: float
    total: float

    def as_cells(self) -> list[Any]:
        return [self.code, self.title, self.unit, self.quantity, self.price, self.total]


@dataclass(frozen=True)
class DescriptionEntry:
    id: int
    title: str
    description: str
    price: str = ""

    def to_dict(self) -> dict[str, Any]:
        # Templates in circulation use either tag name for the long text.
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "descriptif": self.description,
            "price": self.price,
        }


# ── Reports ──────────────────────────────────────────────────────


@dataclass
class ExportReport:
    """Quality report for one export action.

    Contract invariant: ``rows_exported <= rows_selected``.
    """

    kind: str = ""
    rows_selected: int = 0
    rows_exported: int = 0
    fallback_fields: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_selected = _to_non_negative_int(self.rows_selected, "rows_selected")
        self.rows_exported = _to_non_negative_int(self.rows_exported, "rows_exported")
        self.fallback_fields = _to_string_list(self.fallback_fields, "fallback_fields")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_exported > self.rows_selected:
            raise ValueError("rows_exported must be <= rows_selected")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "rows_selected": self.rows_selected,
            "rows_exported": self.rows_exported,
            "fallback_fields": list(self.fallback_fields),
            "warnings": list(self.warnings),
        }


@dataclass
class ExportManifest:
    """Audit-trail manifest for a single CLI export run."""

    tool: str = "bordereau-export"
    version: str = ""
    input_path: str = ""
    sha256: str = ""
    created_at_utc: str = ""
    header_row: int = 0
    rows_in: int = 0
    selected_rows: list[int] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    reports: list[ExportReport] = field(default_factory=list)
    status: str = "success"
    error_message: str = ""

    def __post_init__(self) -> None:
        self.header_row = _to_non_negative_int(self.header_row, "header_row")
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.selected_rows = [
            _to_non_negative_int(idx, "selected_rows") for idx in self.selected_rows
        ]
        self.outputs = _to_string_list(self.outputs, "outputs")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "input_path": self.input_path,
            "sha256": self.sha256,
            "created_at_utc": self.created_at_utc,
            "header_row": self.header_row,
            "rows_in": self.rows_in,
            "selected_rows": list(self.selected_rows),
            "outputs": list(self.outputs),
            "reports": [report.to_dict() for report in self.reports],
            "status": self.status,
            "error_message": self.error_message,
        }
