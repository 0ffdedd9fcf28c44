"""Output capability — hand finished bytes to whatever saves them."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

EmitStatus = Literal["saved", "canceled"]


@dataclass(frozen=True)
class EmitResult:
    status: EmitStatus
    location: Path | None = None

    @property
    def saved(self) -> bool:
        return self.status == "saved"


class Emitter(Protocol):
    def emit(self, payload: bytes, suggested_name: str, mime_type: str) -> EmitResult:
        """Persist *payload* under *suggested_name*, or report a cancellation."""
        ...


def export_file_name(source_name: str, prefix: str, extension: str, default: str) -> str:
    """``export_<stem>.xlsx`` style names; *default* when there is no source name."""
    stem = re.sub(r"\.[^/.]+$", "", Path(source_name).name) if source_name else ""
    if not stem:
        return default
    return f"{prefix}{stem}{extension}"


class DirectoryEmitter:
    """Write outputs atomically into *out_dir*.

    When the target already exists, *confirm_overwrite* is asked first; a
    falsy answer cancels the save. Without a callback existing files are
    replaced.
    """

    def __init__(
        self,
        out_dir: Path,
        confirm_overwrite: Callable[[Path], bool] | None = None,
    ) -> None:
        self.out_dir = Path(out_dir)
        self.confirm_overwrite = confirm_overwrite

    def emit(self, payload: bytes, suggested_name: str, mime_type: str) -> EmitResult:
        target = self.out_dir / Path(suggested_name).name
        if target.exists() and self.confirm_overwrite is not None:
            if not self.confirm_overwrite(target):
                return EmitResult("canceled")

        self.out_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(f"{target.stem}.tmp{target.suffix}")
        tmp_path.write_bytes(payload)
        tmp_path.replace(target)
        return EmitResult("saved", target)
