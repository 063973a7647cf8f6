from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..config.catalog import OS_CONFIG_COLUMN, VM_UUID_COLUMN, SheetSchemaCatalog
from ..excel.reader import DocumentAccessError, WorkbookHandle
from ..models.cell import CellValue
from ..models.issue import ValidationIssue
from ..models.schema import ReconciledSchema
from ..models.validation_result import (
    FailureReason,
    SemanticValidationFailure,
    SemanticValidationResult,
)
from .reconciler import canonical_headers

"""Structural (per document) and row level validation.

Structural checks decide whether a document takes part in the merge at all:

1. the anchor sheet exists
2. the anchor sheet has every mandatory column (after alias resolution)
3. the anchor sheet has at least one data row (fatal even when optional sheets may be ignored)
4. optional catalog sheets that are present have their mandatory columns
5. optional catalog sheets are present

Failures of 4 and 5 are warnings when optional sheets may be ignored; for 4
the sheet is then excluded for that document.

Row checks run during extraction: the empty mandatory value check for every
sheet, and the domain rules (DomainValidator) for the anchor sheet.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "DocumentValidation",
    "DomainValidator",
    "empty_mandatory_indices",
    "has_empty_mandatory_values",
    "validate_document",
]


@dataclass(frozen=True)
class DocumentValidation:
    is_valid: bool
    issues: list[ValidationIssue] = field(default_factory=list)
    excluded_sheets: frozenset[str] = frozenset()
    # True when the workbook itself could not be opened or read
    access_error: bool = False

    @property
    def fatal_issues(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.fatal]


def _missing_mandatory(
    handle: WorkbookHandle, sheet: str, catalog: SheetSchemaCatalog
) -> list[str]:
    present = set(canonical_headers(handle.read_header_row(sheet), sheet, catalog))
    return [c for c in catalog.mandatory_columns(sheet) if c not in present]


def validate_document(
    handle: WorkbookHandle,
    source_name: str,
    catalog: SheetSchemaCatalog,
    ignore_optional_sheets: bool,
    sheets: Iterable[str] | None = None,
) -> DocumentValidation:
    """Run the structural checks for one open workbook.

    ``sheets`` limits the optional sheets checked (defaults to the whole
    catalog); the anchor sheet is always checked.
    """
    anchor = catalog.anchor_sheet
    issues: list[ValidationIssue] = []

    if not handle.sheet_exists(anchor):
        issues.append(ValidationIssue.create(
            source_name,
            f"Missing required sheet '{anchor}'",
            fatal=True,
            issue_type="MISSING_ANCHOR_SHEET",
        ))
        return DocumentValidation(is_valid=False, issues=issues)

    try:
        missing = _missing_mandatory(handle, anchor, catalog)
        if missing:
            issues.append(ValidationIssue.create(
                source_name,
                f"Sheet '{anchor}' is missing mandatory column(s): {', '.join(missing)}",
                fatal=True,
                issue_type="MISSING_MANDATORY_COLUMNS",
                sheet=anchor,
            ))
        if handle.count_data_rows(anchor) == 0:
            issues.append(ValidationIssue.create(
                source_name,
                f"Sheet '{anchor}' contains no data rows",
                fatal=True,
                issue_type="EMPTY_ANCHOR_SHEET",
                sheet=anchor,
            ))

        excluded: set[str] = set()
        candidates = catalog.sheet_names if sheets is None else sheets
        for sheet in candidates:
            if catalog.is_anchor(sheet) or not catalog.is_known_sheet(sheet):
                continue
            sheet = catalog.resolve_sheet_name(sheet)
            if not handle.sheet_exists(sheet):
                issues.append(ValidationIssue.create(
                    source_name,
                    f"Missing optional sheet '{sheet}'",
                    fatal=not ignore_optional_sheets,
                    issue_type="MISSING_OPTIONAL_SHEET",
                    sheet=sheet,
                ))
                continue
            missing = _missing_mandatory(handle, sheet, catalog)
            if missing:
                issues.append(ValidationIssue.create(
                    source_name,
                    f"Sheet '{sheet}' is missing mandatory column(s): {', '.join(missing)}"
                    + (" (sheet excluded for this document)" if ignore_optional_sheets else ""),
                    fatal=not ignore_optional_sheets,
                    issue_type="MISSING_MANDATORY_COLUMNS",
                    sheet=sheet,
                ))
                if ignore_optional_sheets:
                    excluded.add(sheet)
    except DocumentAccessError as e:
        issues.append(ValidationIssue.create(
            source_name,
            f"Cannot read document: {e.detail}",
            fatal=True,
            issue_type="DOCUMENT_ACCESS_ERROR",
        ))
        return DocumentValidation(is_valid=False, issues=issues, access_error=True)

    is_valid = not any(i.fatal for i in issues)
    logger.debug("validated %s: valid=%s issues=%d", source_name, is_valid, len(issues))
    return DocumentValidation(
        is_valid=is_valid,
        issues=issues,
        excluded_sheets=frozenset(excluded),
    )


def empty_mandatory_indices(schema: ReconciledSchema, catalog: SheetSchemaCatalog) -> list[int]:
    """Positions of the sheet's mandatory columns checked for blank values."""
    indices = []
    for column in catalog.mandatory_columns(schema.sheet_name):
        if column in catalog.empty_check_exclusions:
            continue
        idx = schema.index_of(column)
        if idx >= 0:
            indices.append(idx)
    return indices


def has_empty_mandatory_values(row: Sequence[CellValue], indices: Iterable[int]) -> bool:
    return any(idx >= len(row) or row[idx].is_blank() for idx in indices)


def empty_columns(row: Sequence[CellValue], indices: Iterable[int], schema: ReconciledSchema) -> list[str]:
    return [schema.columns[idx] for idx in indices if idx >= len(row) or row[idx].is_blank()]


class DomainValidator:
    """Migration suitability rules for anchor sheet rows.

    Rules are evaluated in a fixed order and a row is recorded under the
    first one it fails: row ceiling, missing VM UUID, missing OS
    configuration, duplicate VM UUID. A UUID is registered only when its row
    passes, so the first occurrence across all documents wins.

    After the ceiling has been hit, later rows are only counted.
    """

    def __init__(
        self,
        schema: ReconciledSchema,
        ceiling: int,
        result: SemanticValidationResult | None = None,
    ) -> None:
        self.schema = schema
        self.ceiling = ceiling
        self.result = result or SemanticValidationResult(schema.sheet_name)
        self._uuid_index = schema.index_of(VM_UUID_COLUMN)
        self._os_index = schema.index_of(OS_CONFIG_COLUMN)
        self._seen: set[str] = set()

    def _value(self, row: Sequence[CellValue], idx: int) -> CellValue | None:
        if idx < 0 or idx >= len(row):
            return None
        return row[idx]

    def evaluate(self, row: Sequence[CellValue]) -> FailureReason | None:
        """First failing rule for ``row`` or None. Does not record anything."""
        if self.result.total_accepted >= self.ceiling:
            return FailureReason.VM_COUNT_EXCEEDED
        uuid = self._value(row, self._uuid_index)
        if self._uuid_index >= 0 and (uuid is None or uuid.is_blank()):
            return FailureReason.MISSING_VM_UUID
        os_value = self._value(row, self._os_index)
        if self._os_index >= 0 and (os_value is None or os_value.is_blank()):
            return FailureReason.MISSING_OS_CONFIGURATION
        if uuid is not None and uuid.to_text().strip() in self._seen:
            return FailureReason.DUPLICATE_VM_UUID
        return None

    def accept(self, row: Sequence[CellValue], source: str = "", row_number: int = -1) -> bool:
        """Evaluate and record ``row``; True when it belongs in the merged output."""
        if self.result.ceiling_reached:
            self.result.record_dropped_after_ceiling()
            return False
        reason = self.evaluate(row)
        if reason is not None:
            self.result.record_failure(
                SemanticValidationFailure(tuple(row), reason, source, row_number)
            )
            return False
        uuid = self._value(row, self._uuid_index)
        if uuid is not None:
            self._seen.add(uuid.to_text().strip())
        self.result.record_accepted()
        return True
