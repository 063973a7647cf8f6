from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd

"""Typed cell values for merged rows.

Workbook cells arrive from pandas as a mix of Python and numpy scalars,
NaN and NaT. Everything past the reader boundary works on CellValue, a closed
variant over text, number, boolean, date and empty, so numeric and date cells
are written back exactly as they were read.
"""

__all__ = [
    "CellKind",
    "CellValue",
    "EMPTY",
]


class CellKind(Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    EMPTY = "empty"


@dataclass(frozen=True)
class CellValue:
    kind: CellKind
    value: str | int | float | bool | datetime | None = None

    @staticmethod
    def text(value: str) -> CellValue:
        return CellValue(CellKind.TEXT, value)

    @staticmethod
    def number(value: int | float) -> CellValue:
        return CellValue(CellKind.NUMBER, value)

    @staticmethod
    def boolean(value: bool) -> CellValue:
        return CellValue(CellKind.BOOLEAN, value)

    @staticmethod
    def date(value: datetime) -> CellValue:
        return CellValue(CellKind.DATE, value)

    @staticmethod
    def from_raw(raw: Any) -> CellValue:
        """Convert a scalar produced by pandas/openpyxl into a CellValue.

        bool is checked before numbers because numpy.bool_ and bool are both
        accepted by numeric checks further down.
        """
        if raw is None or raw is pd.NaT:
            return EMPTY
        if isinstance(raw, CellValue):
            return raw
        if isinstance(raw, float) and math.isnan(raw):
            return EMPTY
        try:
            if pd.isna(raw):
                return EMPTY
        except (TypeError, ValueError):
            pass
        if isinstance(raw, np.datetime64):
            return CellValue.date(pd.Timestamp(raw).to_pydatetime())
        if hasattr(raw, "item") and not isinstance(raw, (str, datetime)):
            # numpy scalar -> python scalar
            raw = raw.item()
        if isinstance(raw, bool):
            return CellValue.boolean(raw)
        if isinstance(raw, (int, float)):
            return CellValue.number(raw)
        if isinstance(raw, pd.Timestamp):
            return CellValue.date(raw.to_pydatetime())
        if isinstance(raw, datetime):
            return CellValue.date(raw)
        if isinstance(raw, date):
            return CellValue.date(datetime(raw.year, raw.month, raw.day))
        if isinstance(raw, time):
            return CellValue.text(raw.isoformat())
        if isinstance(raw, str):
            return CellValue.text(raw)
        return CellValue.text(str(raw))

    def is_blank(self) -> bool:
        if self.kind is CellKind.EMPTY:
            return True
        if self.kind is CellKind.TEXT:
            return not str(self.value).strip()
        return False

    def to_text(self) -> str:
        """String form used for keys, anonymization lookups and messages."""
        if self.kind is CellKind.EMPTY:
            return ""
        if self.kind is CellKind.NUMBER and isinstance(self.value, float) and self.value.is_integer():
            return str(int(self.value))
        if self.kind is CellKind.DATE and isinstance(self.value, datetime):
            return self.value.isoformat()
        return str(self.value)

    def to_native(self) -> Any:
        """Value handed to the workbook writer (None for empty cells)."""
        return None if self.kind is CellKind.EMPTY else self.value

    def __str__(self) -> str:  # pragma: no cover (trivial)
        return self.to_text()


EMPTY = CellValue(CellKind.EMPTY, None)
