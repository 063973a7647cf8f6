from __future__ import annotations

import zipfile
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from ..models.cell import CellValue

"""Workbook reader.

Row 1 is the header row, rows 2.. are data rows. Sheets are parsed with
pandas (openpyxl engine) without header inference; only empty cells are
treated as missing so literal strings such as "NA" or "null" survive.

Documents that cannot be opened are reported as DocumentAccessError, or as an
OpenResult failure value through try_open_document() so callers can record an
issue without exception handling at every call site.
"""

SUPPORTED_SUFFIXES = frozenset({".xlsx", ".xlsm"})


class DocumentErrorKind(Enum):
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    CORRUPT = "corrupt"
    UNSUPPORTED_FORMAT = "unsupported_format"


class DocumentAccessError(Exception):
    """Raised when a workbook cannot be opened or parsed."""

    def __init__(self, kind: DocumentErrorKind, path: Path, detail: str) -> None:
        super().__init__(f"{path.name}: {detail}")
        self.kind = kind
        self.path = path
        self.detail = detail


class WorkbookHandle:
    """Open workbook. Use as a context manager; sheets are parsed on first use."""

    def __init__(self, path: Path, excel: pd.ExcelFile) -> None:
        self.path = path
        self._excel = excel
        self._frames: dict[str, pd.DataFrame] = {}
        # lower-cased name -> actual sheet name
        self._names = {str(n).lower(): str(n) for n in excel.sheet_names}

    def __enter__(self) -> WorkbookHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._frames.clear()
        self._excel.close()

    @property
    def sheet_names(self) -> list[str]:
        return [str(n) for n in self._excel.sheet_names]

    def sheet_exists(self, name: str) -> bool:
        return name.lower() in self._names

    def _frame(self, name: str) -> pd.DataFrame:
        actual = self._names.get(name.lower())
        if actual is None:
            raise KeyError(f"sheet '{name}' not found in {self.path.name}")
        if actual not in self._frames:
            try:
                df = self._excel.parse(actual, header=None, keep_default_na=False, na_values=[""])
            except (ValueError, KeyError, zipfile.BadZipFile) as e:
                raise DocumentAccessError(
                    DocumentErrorKind.CORRUPT, self.path, f"cannot read sheet '{actual}': {e}"
                ) from e
            # object dtype keeps ints, floats, bools and Timestamps as they were read
            self._frames[actual] = df.astype(object)
        return self._frames[actual]

    def read_header_row(self, name: str) -> list[str | None]:
        """Row 1 as strings; blank cells are None and keep their position."""
        df = self._frame(name)
        if df.shape[0] == 0:
            return []
        header: list[str | None] = []
        for raw in df.iloc[0].tolist():
            text = CellValue.from_raw(raw).to_text().strip()
            header.append(text or None)
        return header

    def read_data_rows(self, name: str) -> Iterator[tuple[int, list[CellValue]]]:
        """Yield (worksheet row, typed cells) for rows 2.., skipping rows with no value at all.

        Blank rows keep their place in the frame, so the row number stays the
        one shown in the spreadsheet.
        """
        df = self._frame(name)
        for row_number, raw_row in enumerate(df.iloc[1:].itertuples(index=False, name=None), start=2):
            cells = [CellValue.from_raw(v) for v in raw_row]
            if all(c.is_blank() for c in cells):
                continue
            yield row_number, cells

    def count_data_rows(self, name: str) -> int:
        return sum(1 for _ in self.read_data_rows(name))


@dataclass(frozen=True)
class OpenResult:
    """Outcome of try_open_document(): exactly one of handle/error is set."""
    handle: WorkbookHandle | None = None
    error: DocumentAccessError | None = None

    @property
    def ok(self) -> bool:
        return self.handle is not None


def open_document(path: Path) -> WorkbookHandle:
    if not path.exists():
        raise DocumentAccessError(DocumentErrorKind.NOT_FOUND, path, "file not found")
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise DocumentAccessError(
            DocumentErrorKind.UNSUPPORTED_FORMAT, path, f"unsupported file type '{path.suffix}'"
        )
    try:
        excel = pd.ExcelFile(path, engine="openpyxl")
    except PermissionError as e:
        raise DocumentAccessError(DocumentErrorKind.ACCESS_DENIED, path, "access denied") from e
    except (zipfile.BadZipFile, InvalidFileException, ValueError, KeyError, OSError) as e:
        raise DocumentAccessError(
            DocumentErrorKind.CORRUPT, path, f"file is corrupt or not a workbook: {e}"
        ) from e
    return WorkbookHandle(path, excel)


def try_open_document(path: Path) -> OpenResult:
    try:
        return OpenResult(handle=open_document(path))
    except DocumentAccessError as e:
        return OpenResult(error=e)
