from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from ..config.catalog import HOST_COLUMN, HOST_SHEET, VM_UUID_COLUMN, SheetSchemaCatalog
from ..models.cell import CellValue

"""Cross-sheet referential filtering for capped anchor sheets.

When the anchor sheet is capped, the linking keys of the retained anchor rows
are collected, and dependent sheet rows are kept only when their own linking
key was collected. The linking key is VM UUID for sheets that carry it and
Host for the host sheet.

Keys are read from the native worksheet rows (raw header positions, values
before anonymization), so a key column left out of the merged output still
links the sheets. Rows with a blank linking key are always kept, and a key
column for which no anchor value was collected does not filter at all.
"""

__all__ = [
    "LinkingKey",
    "ReferentialFilter",
]

# Keys collected from retained anchor rows
ANCHOR_KEY_COLUMNS = (VM_UUID_COLUMN, HOST_COLUMN)


@dataclass(frozen=True)
class LinkingKey:
    column: str
    index: int  # position in the document's native header row


class ReferentialFilter:
    def __init__(self, catalog: SheetSchemaCatalog) -> None:
        self.catalog = catalog
        self._keys: dict[str, set[str]] = {c: set() for c in ANCHOR_KEY_COLUMNS}
        self._anchor_indices: dict[str, int] = {}

    def _key_positions(self, raw_header: Sequence[str | None], sheet: str) -> dict[str, int]:
        positions: dict[str, int] = {}
        for idx, raw in enumerate(raw_header):
            if raw is None or not raw.strip():
                continue
            name = self.catalog.canonical_name(sheet, raw.strip())
            if name in ANCHOR_KEY_COLUMNS:
                positions.setdefault(name, idx)
        return positions

    def bind_anchor(self, raw_header: Sequence[str | None]) -> None:
        """Use the key positions of the anchor document read next."""
        self._anchor_indices = self._key_positions(raw_header, self.catalog.anchor_sheet)

    def register_anchor_row(self, cells: Sequence[CellValue]) -> None:
        for column, idx in self._anchor_indices.items():
            if idx < len(cells) and not cells[idx].is_blank():
                self._keys[column].add(cells[idx].to_text().strip())

    def retained_keys(self, column: str) -> frozenset[str]:
        return frozenset(self._keys.get(column, ()))

    def linking_key(self, raw_header: Sequence[str | None], sheet: str) -> LinkingKey | None:
        """Key used to filter a dependent sheet of one document, or None when it has none."""
        positions = self._key_positions(raw_header, sheet)
        if VM_UUID_COLUMN in positions:
            return LinkingKey(VM_UUID_COLUMN, positions[VM_UUID_COLUMN])
        if sheet.lower() == HOST_SHEET.lower() and HOST_COLUMN in positions:
            return LinkingKey(HOST_COLUMN, positions[HOST_COLUMN])
        return None

    def retains(self, cells: Sequence[CellValue], key: LinkingKey | None) -> bool:
        if key is None or key.index >= len(cells):
            return True
        keys = self._keys.get(key.column)
        if not keys:
            return True
        value = cells[key.index]
        if value.is_blank():
            return True
        return value.to_text().strip() in keys
