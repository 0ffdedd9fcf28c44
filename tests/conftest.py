from __future__ import annotations

import io
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
from docx import Document
from openpyxl import Workbook

HEADER = ["N° Prix", "Désignation", "Unité", "Quantité", "P.U DH.HT", "Montant Total HT", "Descriptif"]

SAMPLE_ROWS: list[list[object]] = [
    ["BORDEREAU DES PRIX - DETAIL ESTIMATIF", None, None, None, None, None, None],
    HEADER,
    ["1.1", "Terrassement en pleine masse", "m3", 120, 45.5, 5460, "Fouilles en pleine masse\ny compris évacuation."],
    ["1.2", "Béton de propreté", "m3", "12", "900", "", "Béton dosé à 150 kg/m3."],
    [None, None, None, None, None, None, None],
    ["1.3", "Béton armé pour semelles", "m3", 30, 2100, 63000, "Béton B25 armé."],
    ["1.4", "Enduit extérieur", "m2", "abc", 85, "", ""],
]


def write_xlsx(path: Path, rows: Sequence[Sequence[object]]) -> Path:
    wb = Workbook()
    ws = wb.active
    assert ws is not None
    for row in rows:
        ws.append(list(row))
    wb.save(path)
    return path


def template_bytes(body: Sequence[str] | None = None) -> bytes:
    doc = Document()
    for text in body or [
        "ROYAUME DU MAROC",
        "{#projects}",
        "{id}. {title}",
        "{description}",
        "{/projects}",
        "Fin du document",
    ]:
        doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def sample_xlsx(tmp_path: Path) -> Path:
    return write_xlsx(tmp_path / "bordereau.xlsx", SAMPLE_ROWS)


@pytest.fixture
def template_path(tmp_path: Path) -> Path:
    path = tmp_path / "template.docx"
    path.write_bytes(template_bytes())
    return path


@pytest.fixture
def make_xlsx(tmp_path: Path) -> Callable[..., Path]:
    def _make(rows: Sequence[Sequence[object]], name: str = "input.xlsx") -> Path:
        return write_xlsx(tmp_path / name, rows)

    return _make
