"""I/O helpers — load the input grid, hash inputs, write JSON artifacts."""

from __future__ import annotations

import hashlib
import json
import zipfile
from datetime import datetime
from numbers import Integral, Real
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd

from bordereau_export.errors import InvalidFileType, UnreadableFile
from bordereau_export.models import CellValue, RawGrid

ALLOWED_EXTENSIONS: tuple[str, ...] = (".xlsx", ".xls", ".csv")

_CSV_DELIMITERS: tuple[str, ...] = (";", ",", "\t", "|")
_CSV_SNIFF_CHARS = 64_000
_CSV_MAX_COLUMNS = 256

# ── Loading ──────────────────────────────────────────────────────


def check_extension(path: Path) -> str:
    """Return the lower-cased suffix of *path* or raise :class:`InvalidFileType`."""
    suffix = Path(path).suffix.lower()
    if suffix not in ALLOWED_EXTENSIONS:
        shown = suffix or "(no extension)"
        raise InvalidFileType(
            "Invalid file type. Please select an Excel file "
            f"({', '.join(ALLOWED_EXTENSIONS)}). You selected: {shown}"
        )
    return suffix


def _guess_delimiter(text: str) -> str:
    # Title rows above the header carry no delimiter, so count over the whole sample.
    sample = text[:_CSV_SNIFF_CHARS]
    counts = {sep: sample.count(sep) for sep in _CSV_DELIMITERS}
    best = max(_CSV_DELIMITERS, key=lambda sep: counts[sep])
    return best if counts[best] else ","


def _trim_trailing_empty_columns(df: pd.DataFrame) -> pd.DataFrame:
    filled = df.fillna("").astype("string")
    width = len(df.columns)
    while width and (filled.iloc[:, width - 1].str.strip() == "").all():
        width -= 1
    return df.iloc[:, :width]


def _read_csv(path: Path, delimiter: str | None = None) -> pd.DataFrame:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            text = path.read_text(encoding=encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
            continue
        if not text.strip():
            return pd.DataFrame()
        try:
            # Rows above the header can be narrower than the data; pad to a fixed width.
            df = pd.read_csv(
                path,
                header=None,
                names=range(_CSV_MAX_COLUMNS),
                dtype="string",
                sep=delimiter or _guess_delimiter(text),
                engine="c",
                encoding=encoding,
                encoding_errors="strict",
                na_filter=False,
                skip_blank_lines=False,
            )
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            last_exc = exc
            continue
        return _trim_trailing_empty_columns(df)
    raise UnreadableFile(f"Could not read CSV {path.name} (decode or parse failed)") from last_exc


def _read_sheet(path: Path, engine: str) -> pd.DataFrame:
    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    try:
        # object dtype keeps numeric cells as numbers instead of locale-ambiguous text.
        return read_excel(path, sheet_name=0, header=None, engine=engine, dtype=object)
    except ImportError as exc:
        raise UnreadableFile(
            "Unsupported .xls input unless 'xlrd' is installed. "
            "Either convert to .xlsx or add dependency: pip install xlrd"
        ) from exc
    except (ValueError, KeyError, OSError, zipfile.BadZipFile) as exc:
        raise UnreadableFile(
            f"Error reading {path.name}. Please make sure the file is not corrupted."
        ) from exc


def _cell_value(value: Any) -> CellValue:
    if pd.isna(value):
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, Integral):
        return int(value)
    if isinstance(value, Real):
        return float(value)
    if isinstance(value, (pd.Timestamp, datetime)):
        return value.isoformat()
    return str(value)


def _to_grid(df: pd.DataFrame) -> RawGrid:
    if df.empty:
        return ()
    return tuple(
        tuple(_cell_value(value) for value in row)
        for row in df.itertuples(index=False, name=None)
    )


def load_grid(path: Path, delimiter: str | None = None) -> RawGrid:
    """Load the first sheet of a CSV or Excel file as a rectangular grid.

    CSV cells are text. Workbook cells are text, except numeric cells,
    which keep their ``int``/``float`` value. Absent cells are ``""``. Headers are *not* inferred
    here, see :func:`bordereau_export.pipeline.detect_header_row`.

    Raises
    ------
    InvalidFileType
        If the extension is not in :data:`ALLOWED_EXTENSIONS` (checked first).
    UnreadableFile
        If *path* does not exist or cannot be decoded.
    """
    path = Path(path)
    suffix = check_extension(path)
    if not path.is_file():
        raise UnreadableFile(f"Input file not found: {path}")

    if suffix == ".csv":
        return _to_grid(_read_csv(path, delimiter))
    if suffix == ".xls":
        return _to_grid(_read_sheet(path, "xlrd"))
    return _to_grid(_read_sheet(path, "openpyxl"))


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
