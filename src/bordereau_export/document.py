"""Word export — long descriptions merged into a ``.docx`` template.

The template repeats a block of body paragraphs once per project::

    {#projects}
    {id}. {title}
    {description}
    {/projects}

Loop tags must each stand alone in their paragraph. Inside the block,
``{id}``, ``{title}``, ``{description}``, ``{descriptif}`` and ``{price}``
are replaced; unknown tags render blank and newlines become line breaks.
Control characters XML cannot hold are dropped (vertical tab and form feed
become line breaks).
"""

from __future__ import annotations

import copy
import io
import re
import zipfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph

from bordereau_export.errors import EmptySelection, RenderFailure, TemplateUnavailable
from bordereau_export.models import (
    CellValue,
    DescriptionEntry,
    Record,
    ResolvedColumns,
    cell_text,
)
from bordereau_export.pipeline import NumberLocale, parse_number

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DEFAULT_TEMPLATE = Path("templates") / "ROYAUME_DU_MAROC.docx"
LOOP_NAME = "projects"
UNTITLED = "Sans Titre"

_TAG_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_LINE_BREAK_RE = re.compile(r"[\x0b\x0c]")
_XML_ILLEGAL_RE = re.compile(r"[\x00-\x08\x0e-\x1f\ufffe\uffff]")


# ── Assembly ─────────────────────────────────────────────────────


def _price_text(value: CellValue, locale: NumberLocale) -> str:
    number = parse_number(value, locale=locale)
    return f"{number:.2f}" if number is not None else cell_text(value)


def build_description_entries(
    records: Sequence[Record],
    columns: ResolvedColumns,
    *,
    locale: NumberLocale = "auto",
) -> list[DescriptionEntry]:
    """Pair each selected title with its long text, numbered 1..n in selection order.

    The unit price is carried along as two-decimal text (blank when absent)
    for templates that print it.
    """
    if not records:
        raise EmptySelection("No rows selected. Please select at least one row.")
    return [
        DescriptionEntry(
            id=position,
            title=cell_text(record.get(columns.title)) or UNTITLED,
            description=cell_text(record.get(columns.description)),
            price=_price_text(record.get(columns.price, ""), locale),
        )
        for position, record in enumerate(records, start=1)
    ]


def build_context(entries: Sequence[DescriptionEntry]) -> dict[str, Any]:
    return {LOOP_NAME: [entry.to_dict() for entry in entries]}


# ── Template handling ────────────────────────────────────────────


def load_template(path: Path) -> bytes:
    """Read the template bytes or raise :class:`TemplateUnavailable`."""
    path = Path(path)
    try:
        return path.read_bytes()
    except OSError as exc:
        raise TemplateUnavailable(f"Could not load the document template: {path}") from exc


def _element_text(element: Any) -> str:
    return "".join(node.text or "" for node in element.iter(qn("w:t")))


def _find_loop(children: list[Any], name: str) -> tuple[int, int]:
    open_tag, close_tag = f"{{#{name}}}", f"{{/{name}}}"
    start = end = None
    for idx, element in enumerate(children):
        text = _element_text(element)
        for tag in (open_tag, close_tag):
            if tag in text and text.strip() != tag:
                raise RenderFailure(f"Loop tag {tag} must stand alone in its paragraph")
        if text.strip() == open_tag:
            if start is not None:
                raise RenderFailure(f"Nested or repeated loop tag {open_tag}")
            start = idx
        elif text.strip() == close_tag:
            if start is None:
                raise RenderFailure(f"Loop tag {close_tag} has no matching {open_tag}")
            end = idx
            break
    if start is None:
        raise RenderFailure(f"Template has no {open_tag} loop")
    if end is None:
        raise RenderFailure(f"Unclosed loop tag {open_tag}")
    return start, end


def _xml_text(text: str) -> str:
    return _XML_ILLEGAL_RE.sub("", _LINE_BREAK_RE.sub("\n", text))


def _fill_tags(element: Any, values: Mapping[str, Any]) -> None:
    def _value(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        return "" if value is None else _xml_text(str(value))

    for p in element.iter(qn("w:p")):
        paragraph = Paragraph(p, None)
        runs = paragraph.runs
        text = "".join(run.text for run in runs)
        filled = _TAG_RE.sub(_value, text)
        if filled == text:
            continue
        # Tags are often split across runs; keep the first run's formatting.
        runs[0].text = filled
        for run in runs[1:]:
            run.text = ""


def render_document(template: bytes, context: Mapping[str, Any]) -> bytes:
    """Merge *context* into the ``.docx`` *template* and return the new document.

    Raises :class:`RenderFailure` on a corrupt template, malformed loop tags
    or a value the document cannot hold.
    """
    try:
        doc = Document(io.BytesIO(template))
    except (PackageNotFoundError, KeyError, ValueError, SyntaxError, zipfile.BadZipFile) as exc:
        raise RenderFailure(f"Export failed: template is not a valid .docx ({exc})") from exc

    body = doc.element.body
    children = list(body)
    start, end = _find_loop(children, LOOP_NAME)
    block = children[start + 1:end]

    try:
        for item in context.get(LOOP_NAME, []):
            for element in block:
                clone = copy.deepcopy(element)
                _fill_tags(clone, item)
                children[end].addprevious(clone)

        for element in (children[start], *block, children[end]):
            body.remove(element)

        buffer = io.BytesIO()
        doc.save(buffer)
    except ValueError as exc:
        raise RenderFailure(f"Export failed: could not fill the template ({exc})") from exc
    return buffer.getvalue()
