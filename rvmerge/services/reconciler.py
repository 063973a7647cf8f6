from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from ..config.catalog import SOURCE_COLUMN, SheetSchemaCatalog
from ..models.issue import ValidationIssue
from ..models.schema import ColumnMapping, ReconciledSchema

"""Per sheet schema reconciliation.

The reconciled column list of a sheet is the intersection of the canonical
(alias-resolved) headers of every participating document, in the order the
first document lists them. In mandatory-only mode it is further limited to
the sheet's mandatory columns. The synthetic source column is appended last.
"""

__all__ = [
    "SheetReconciliation",
    "build_column_mapping",
    "canonical_headers",
    "reconcile_sheet",
]


@dataclass(frozen=True)
class SheetReconciliation:
    schema: ReconciledSchema
    warnings: list[ValidationIssue] = field(default_factory=list)
    # Columns found in the documents, not counting the synthetic source column
    common_column_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.common_column_count == 0


def canonical_headers(
    raw_header: Sequence[str | None], sheet: str, catalog: SheetSchemaCatalog
) -> list[str]:
    """Alias-resolved header names without blanks or repeats, in sheet order."""
    names: list[str] = []
    seen: set[str] = set()
    for raw in raw_header:
        if raw is None or not raw.strip():
            continue
        name = catalog.canonical_name(sheet, raw.strip())
        if name not in seen:
            seen.add(name)
            names.append(name)
    return names


def reconcile_sheet(
    sheet: str,
    header_sets: Mapping[str, Sequence[str]],
    catalog: SheetSchemaCatalog,
    mandatory_only: bool = False,
    include_source_identifier: bool = False,
) -> SheetReconciliation:
    """Reconcile one sheet over the canonical headers of each document.

    ``header_sets`` maps document name to canonical header list; the first
    entry defines the column order.
    """
    warnings: list[ValidationIssue] = []
    if not header_sets:
        return SheetReconciliation(ReconciledSchema(sheet, ()), warnings, 0)

    ordered = list(header_sets.values())
    others = [set(h) for h in ordered[1:]]
    columns = [c for c in ordered[0] if all(c in o for o in others)]

    mandatory = catalog.mandatory_columns(sheet)
    if mandatory_only and mandatory:
        for column in mandatory:
            lacking = [doc for doc, headers in header_sets.items() if column not in headers]
            for doc in lacking:
                warnings.append(ValidationIssue.create(
                    doc,
                    f"Mandatory column '{column}' of sheet '{sheet}' is missing in this document "
                    "and is left out of the merged output",
                    issue_type="MANDATORY_COLUMN_NOT_COMMON",
                    sheet=sheet,
                ))
        mandatory_set = set(mandatory)
        columns = [c for c in columns if c in mandatory_set]

    common = len(columns)
    if include_source_identifier and common and SOURCE_COLUMN not in columns:
        columns.append(SOURCE_COLUMN)

    return SheetReconciliation(ReconciledSchema(sheet, tuple(columns)), warnings, common)


def build_column_mapping(
    raw_header: Sequence[str | None],
    sheet: str,
    schema: ReconciledSchema,
    catalog: SheetSchemaCatalog,
) -> list[ColumnMapping]:
    """Map native column positions to reconciled positions.

    The first native occurrence of a reconciled name wins; native columns
    without a reconciled counterpart are dropped.
    """
    mapping: list[ColumnMapping] = []
    used: set[int] = set()
    for source_index, raw in enumerate(raw_header):
        if raw is None or not raw.strip():
            continue
        target = schema.index_of(catalog.canonical_name(sheet, raw.strip()))
        if target < 0 or target in used:
            continue
        used.add(target)
        mapping.append(ColumnMapping(source_index, target))
    return mapping
