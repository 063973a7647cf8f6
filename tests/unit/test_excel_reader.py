from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest
from conftest import write_xlsx

from rvmerge.excel.reader import (
    DocumentAccessError,
    DocumentErrorKind,
    open_document,
    try_open_document,
)
from rvmerge.models.cell import CellKind


@pytest.fixture()
def workbook(tmp_path: Path) -> Path:
    return write_xlsx(tmp_path / "book.xlsx", {
        "vInfo": [
            ["VM", None, "CPUs", "Created", "Note"],
            ["srv1", None, 2, datetime(2024, 1, 2, 3, 4), "NA"],
            [None, None, None, None, None],
            ["srv2", None, 4.5, None, True],
        ],
        "Empty": [["A", "B"]],
    })


def test_open_missing_file(tmp_path: Path):
    with pytest.raises(DocumentAccessError) as ei:
        open_document(tmp_path / "nope.xlsx")
    assert ei.value.kind is DocumentErrorKind.NOT_FOUND


def test_open_unsupported_format(tmp_path: Path):
    p = tmp_path / "export.csv"
    p.write_text("VM,CPUs\n", encoding="utf-8")
    with pytest.raises(DocumentAccessError) as ei:
        open_document(p)
    assert ei.value.kind is DocumentErrorKind.UNSUPPORTED_FORMAT


def test_open_corrupt_file(tmp_path: Path):
    p = tmp_path / "broken.xlsx"
    p.write_bytes(b"this is not a zip archive")
    result = try_open_document(p)
    assert not result.ok
    assert result.handle is None
    assert result.error.kind is DocumentErrorKind.CORRUPT


def test_try_open_success(workbook: Path):
    result = try_open_document(workbook)
    assert result.ok and result.error is None
    result.handle.close()


def test_sheet_names_and_case_insensitive_lookup(workbook: Path):
    with open_document(workbook) as h:
        assert h.sheet_names == ["vInfo", "Empty"]
        assert h.sheet_exists("VINFO")
        assert h.sheet_exists("vinfo")
        assert not h.sheet_exists("vHost")


def test_header_keeps_blank_positions(workbook: Path):
    with open_document(workbook) as h:
        assert h.read_header_row("vinfo") == ["VM", None, "CPUs", "Created", "Note"]


def test_data_rows_are_typed_and_blank_rows_skipped(workbook: Path):
    with open_document(workbook) as h:
        rows = list(h.read_data_rows("vInfo"))
    # the blank worksheet row 3 is skipped without shifting the numbers after it
    assert [n for n, _ in rows] == [2, 4]
    first, second = (cells for _, cells in rows)
    assert first[0].to_text() == "srv1"
    assert first[2].kind is CellKind.NUMBER and first[2].value == 2
    assert first[3].kind is CellKind.DATE and first[3].value == datetime(2024, 1, 2, 3, 4)
    # literal "NA" is text, not a missing value
    assert first[4].to_text() == "NA"
    assert second[2].value == 4.5
    assert second[3].is_blank()
    assert second[4].kind is CellKind.BOOLEAN


def test_count_data_rows(workbook: Path):
    with open_document(workbook) as h:
        assert h.count_data_rows("vInfo") == 2
        assert h.count_data_rows("Empty") == 0


def test_data_rows_is_one_shot(workbook: Path):
    with open_document(workbook) as h:
        it = h.read_data_rows("vInfo")
        assert len(list(it)) == 2
        assert list(it) == []
        # a new call starts over
        assert len(list(h.read_data_rows("vInfo"))) == 2


def test_unknown_sheet_raises(workbook: Path):
    with open_document(workbook) as h:
        with pytest.raises(KeyError):
            h.read_header_row("vHost")
