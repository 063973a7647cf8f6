from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from ..models.cell import CellValue

"""Workbook writer: one worksheet per entry, bold header row, auto-fit widths."""

MAX_SHEET_NAME = 31
MAX_COLUMN_WIDTH = 60

SheetContent = tuple[Sequence[str], Sequence[Sequence[Any]]]


def _native(value: Any) -> Any:
    return value.to_native() if isinstance(value, CellValue) else value


def _display_width(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, CellValue):
        return len(value.to_text())
    return len(str(value))


def write_workbook(path: Path, sheets: Mapping[str, SheetContent]) -> Path:
    """Write ``sheets`` (name -> (header, rows)) to ``path`` in mapping order.

    Rows may hold CellValue or plain Python values. Parent directories are
    created when missing.
    """
    if not sheets:
        raise ValueError("at least one sheet is required")
    path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, (header, rows) in sheets.items():
            sheet_name = name[:MAX_SHEET_NAME]
            data = [[_native(v) for v in row] for row in rows]
            df = pd.DataFrame(data, columns=list(header), dtype=object)
            df.to_excel(writer, sheet_name=sheet_name, index=False)

            ws = writer.sheets[sheet_name]
            bold = Font(bold=True)
            for cell in ws[1]:
                cell.font = bold

            for idx, column in enumerate(header):
                width = len(str(column))
                for row in rows:
                    if idx < len(row):
                        width = max(width, _display_width(row[idx]))
                ws.column_dimensions[get_column_letter(idx + 1)].width = min(width + 2, MAX_COLUMN_WIDTH)
    return path
