from __future__ import annotations

from dataclasses import dataclass

"""Reconciled schema and column mapping models."""

__all__ = [
    "ColumnMapping",
    "ReconciledSchema",
]


@dataclass(frozen=True)
class ColumnMapping:
    """Maps one native worksheet column onto the reconciled layout.

    source_index is 0-based within the document's header row;
    reconciled_index is 0-based within ReconciledSchema.columns.
    """
    source_index: int
    reconciled_index: int


@dataclass(frozen=True)
class ReconciledSchema:
    """Ordered output columns of one sheet, valid for one merge run."""
    sheet_name: str
    columns: tuple[str, ...]

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def index_of(self, column: str) -> int:
        try:
            return self.columns.index(column)
        except ValueError:
            return -1

    def __contains__(self, column: object) -> bool:
        return column in self.columns
