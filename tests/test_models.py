from __future__ import annotations

import pytest

from bordereau_export.errors import EmptyDataset, InvalidSelection
from bordereau_export.models import (
    Column,
    Dataset,
    DescriptionEntry,
    ExportManifest,
    ExportReport,
    ExportRow,
    Selection,
)


def _dataset(size: int = 3) -> Dataset:
    return Dataset(
        records=tuple({"n° prix": str(i + 1), "designation": f"Item {i + 1}"} for i in range(size)),
        columns=(Column("n° prix", "N° Prix"), Column("designation", "Désignation")),
    )


def test_dataset_rejects_empty_records() -> None:
    with pytest.raises(EmptyDataset, match="No data found"):
        Dataset(records=())


def test_dataset_keys_and_labels() -> None:
    dataset = _dataset()

    assert len(dataset) == 3
    assert dataset.keys == ["n° prix", "designation"]
    assert dataset.label_for("designation") == "Désignation"
    assert dataset.label_for("unknown") == "unknown"


def test_selection_keeps_order_and_drops_duplicates() -> None:
    selection = Selection((4, 1, 4, 7, 1))

    assert selection.indices == (4, 1, 7)
    assert len(selection) == 3
    assert 7 in selection
    assert 2 not in selection


def test_selection_rejects_negative_and_non_integer_indices() -> None:
    with pytest.raises(ValueError, match="selection index"):
        Selection((-1,))

    with pytest.raises(TypeError, match="selection index"):
        Selection((True,))  # type: ignore[arg-type]

    with pytest.raises(TypeError, match="selection index"):
        Selection(("2",))  # type: ignore[arg-type]


def test_selection_of_checks_bounds() -> None:
    assert Selection.of([2, 0], size=3).indices == (2, 0)

    with pytest.raises(InvalidSelection, match="out of range: 3, 9"):
        Selection.of([0, 3, 9], size=3)


def test_selection_toggle_returns_new_selection() -> None:
    original = Selection((1, 2))

    removed = original.toggle(1)
    added = removed.toggle(0)

    assert original.indices == (1, 2)
    assert removed.indices == (2,)
    assert added.indices == (2, 0)


def test_selection_pick_follows_selection_order() -> None:
    dataset = _dataset()

    picked = Selection((2, 0)).pick(dataset)

    assert [r["n° prix"] for r in picked] == ["3", "1"]


def test_export_row_cells_in_export_column_order() -> None:
    row = ExportRow(code=1, title="Béton", unit="m3", quantity=2.0, price=900.0, total=1800.0)

    assert row.as_cells() == [1, "Béton", "m3", 2.0, 900.0, 1800.0]


def test_description_entry_exposes_both_description_tags() -> None:
    payload = DescriptionEntry(id=2, title="Enduit", description="Deux couches").to_dict()

    assert payload == {
        "id": 2,
        "title": "Enduit",
        "description": "Deux couches",
        "descriptif": "Deux couches",
        "price": "",
    }


def test_export_report_rejects_more_exported_than_selected() -> None:
    with pytest.raises(ValueError, match="rows_exported"):
        ExportReport(rows_selected=1, rows_exported=2)


def test_export_report_rejects_negative_and_non_string_fields() -> None:
    with pytest.raises(ValueError, match="rows_selected"):
        ExportReport(rows_selected=-1)

    with pytest.raises(TypeError, match="warnings"):
        ExportReport(warnings=["ok", 3])  # type: ignore[list-item]

    with pytest.raises(TypeError, match="fallback_fields"):
        ExportReport(fallback_fields="unit")  # type: ignore[arg-type]


def test_export_report_to_dict_returns_list_copies() -> None:
    report = ExportReport(kind="spreadsheet", rows_selected=2, rows_exported=2, warnings=["w"])

    payload = report.to_dict()
    payload["warnings"].append("other")

    assert report.warnings == ["w"]
    assert payload["kind"] == "spreadsheet"


def test_manifest_to_dict_serializes_reports() -> None:
    manifest = ExportManifest(
        version="0.2.0",
        input_path="b.xlsx",
        header_row=1,
        rows_in=4,
        selected_rows=[3, 0],
        outputs=["out/export_b.xlsx"],
        reports=[ExportReport(kind="spreadsheet", rows_selected=2, rows_exported=2)],
    )

    payload = manifest.to_dict()

    assert payload["tool"] == "bordereau-export"
    assert payload["selected_rows"] == [3, 0]
    assert payload["reports"][0]["rows_exported"] == 2
    assert payload["status"] == "success"


def test_manifest_rejects_bad_counts() -> None:
    with pytest.raises(TypeError, match="rows_in"):
        ExportManifest(rows_in=True)  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="selected_rows"):
        ExportManifest(selected_rows=[-1])
