from __future__ import annotations

import io
from pathlib import Path

import pytest
from conftest import template_bytes
from docx import Document

from bordereau_export.document import (
    UNTITLED,
    build_context,
    build_description_entries,
    load_template,
    render_document,
)
from bordereau_export.errors import EmptySelection, RenderFailure, TemplateUnavailable
from bordereau_export.models import DescriptionEntry, Record
from bordereau_export.pipeline import resolve_columns

KEYS = ["n° prix", "designation", "descriptif"]


def _paragraphs(payload: bytes) -> list[str]:
    return [p.text for p in Document(io.BytesIO(payload)).paragraphs]


def test_entries_are_numbered_in_selection_order() -> None:
    records: list[Record] = [
        {"n° prix": "3.1", "designation": "Enduit", "descriptif": "Deux couches"},
        {"n° prix": "1.1", "designation": "Fouilles", "descriptif": "En pleine masse"},
    ]

    entries = build_description_entries(records, resolve_columns(KEYS))

    assert entries == [
        DescriptionEntry(id=1, title="Enduit", description="Deux couches"),
        DescriptionEntry(id=2, title="Fouilles", description="En pleine masse"),
    ]


def test_blank_title_becomes_placeholder() -> None:
    records: list[Record] = [{"n° prix": "1", "designation": "   ", "descriptif": "x"}]

    (entry,) = build_description_entries(records, resolve_columns(KEYS))

    assert entry.title == UNTITLED


def test_missing_description_column_reads_blank() -> None:
    records: list[Record] = [{"n° prix": "1", "designation": "Peinture"}]

    (entry,) = build_description_entries(records, resolve_columns(["n° prix", "designation"]))

    assert entry.description == ""


def test_entries_reject_empty_selection() -> None:
    with pytest.raises(EmptySelection):
        build_description_entries([], resolve_columns(KEYS))


def test_build_context_wraps_entries_in_projects_loop() -> None:
    context = build_context([DescriptionEntry(id=1, title="A", description="B")])

    assert context == {
        "projects": [
            {"id": 1, "title": "A", "description": "B", "descriptif": "B", "price": ""}
        ]
    }


def test_render_document_repeats_block_per_project() -> None:
    context = build_context(
        [
            DescriptionEntry(id=1, title="Fouilles", description="Ligne 1\nLigne 2"),
            DescriptionEntry(id=2, title="Enduit", description="Deux couches"),
        ]
    )

    paragraphs = _paragraphs(render_document(template_bytes(), context))

    assert paragraphs == [
        "ROYAUME DU MAROC",
        "1. Fouilles",
        "Ligne 1\nLigne 2",
        "2. Enduit",
        "Deux couches",
        "Fin du document",
    ]


def test_render_document_fills_tags_split_across_runs() -> None:
    doc = Document()
    doc.add_paragraph("{#projects}")
    split = doc.add_paragraph()
    split.add_run("Article {ti")
    split.add_run("tle} : {descriptif}")
    split.add_run(" {unknown}")
    doc.add_paragraph("{/projects}")
    buffer = io.BytesIO()
    doc.save(buffer)
    context = build_context([DescriptionEntry(id=1, title="Béton", description="B25")])

    rendered = Document(io.BytesIO(render_document(buffer.getvalue(), context)))

    assert [p.text for p in rendered.paragraphs] == ["Article Béton : B25 "]


def test_render_document_with_no_projects_drops_the_block() -> None:
    paragraphs = _paragraphs(render_document(template_bytes(), {"projects": []}))

    assert paragraphs == ["ROYAUME DU MAROC", "Fin du document"]


@pytest.mark.parametrize(
    ("body", "message"),
    [
        (["Intro", "{id}"], "no {#projects} loop"),
        (["{#projects}", "{id}"], "Unclosed"),
        (["{/projects}", "{#projects}"], "no matching"),
        (["Voir {#projects} ici", "{/projects}"], "stand alone"),
        (["{#projects}", "{#projects}", "{/projects}"], "repeated"),
    ],
)
def test_render_document_rejects_malformed_loops(body: list[str], message: str) -> None:
    with pytest.raises(RenderFailure, match=message):
        render_document(template_bytes(body), {"projects": []})


def test_render_document_rejects_non_docx_bytes() -> None:
    with pytest.raises(RenderFailure, match="not a valid .docx"):
        render_document(b"plain text", {"projects": []})


def test_load_template_missing_file(tmp_path: Path) -> None:
    with pytest.raises(TemplateUnavailable, match="template"):
        load_template(tmp_path / "absent.docx")


def test_load_template_reads_bytes(template_path: Path) -> None:
    assert load_template(template_path) == template_path.read_bytes()


def test_entries_carry_formatted_unit_price() -> None:
    keys = [*KEYS, "p.u dh.ht"]
    records: list[Record] = [
        {"n° prix": "1", "designation": "Béton", "descriptif": "B25", "p.u dh.ht": 8},
        {"n° prix": "2", "designation": "Enduit", "descriptif": "", "p.u dh.ht": "1 250,5"},
        {"n° prix": "3", "designation": "Divers", "descriptif": "", "p.u dh.ht": "forfait"},
    ]

    entries = build_description_entries(records, resolve_columns(keys))

    assert [entry.price for entry in entries] == ["8.00", "1250.50", "forfait"]


def test_render_document_fills_price_tag() -> None:
    context = build_context([DescriptionEntry(id=1, title="Béton", description="", price="8.00")])

    template = template_bytes(["{#projects}", "{title}: {price}", "{/projects}"])

    paragraphs = _paragraphs(render_document(template, context))

    assert paragraphs == ["Béton: 8.00"]


def test_render_document_turns_vertical_tab_into_line_break_and_drops_nul() -> None:
    context = build_context([DescriptionEntry(id=1, title="Dalle\x00", description="ligne\x0bsuite")])

    paragraphs = _paragraphs(render_document(template_bytes(), context))

    assert paragraphs[1:3] == ["1. Dalle", "ligne\nsuite"]


def test_render_document_reports_unwritable_values(monkeypatch: pytest.MonkeyPatch) -> None:
    from bordereau_export import document

    def _reject(element: object, values: object) -> None:
        raise ValueError("All strings must be XML compatible")

    monkeypatch.setattr(document, "_fill_tags", _reject)
    context = build_context([DescriptionEntry(id=1, title="A", description="B")])

    with pytest.raises(RenderFailure, match="could not fill the template"):
        render_document(template_bytes(), context)
