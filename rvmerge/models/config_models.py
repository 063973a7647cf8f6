from __future__ import annotations

from dataclasses import dataclass, replace

"""Run option dataclass for the merge engine.

MergeOptions is built once per run (defaults < options file < CLI flags) and
is read-only afterwards. validate() is called before any workbook is opened.
"""

__all__ = [
    "ConfigurationConflict",
    "DEFAULT_DOMAIN_ROW_CEILING",
    "MergeOptions",
]

# Largest number of VMs a single migration assessment import accepts
DEFAULT_DOMAIN_ROW_CEILING = 20_000


class ConfigurationConflict(Exception):
    """Raised when options are set in a combination that is not supported."""


@dataclass(frozen=True)
class MergeOptions:
    """Flags that control one merge run.

    Attributes:
        ignore_missing_optional_sheets: Missing or incomplete optional sheets
            become warnings instead of fatal issues.
        skip_invalid_documents: Exclude structurally invalid documents instead
            of failing the run.
        anonymize: Replace identifying values with per-document substitutes.
        only_mandatory_columns: Reconcile on mandatory columns only.
        include_source_identifier: Append a "Source File" column.
        skip_rows_with_empty_mandatory_values: Drop rows with blank mandatory
            cells instead of only warning.
        enable_domain_validation: Apply migration suitability rules to the
            anchor sheet (row ceiling, key presence, uniqueness).
        max_anchor_rows: Cap on merged anchor rows; also filters dependent
            sheets to the retained rows' keys.
        all_sheets: Merge every sheet found, not only catalog sheets.
        domain_row_ceiling: Row ceiling used by domain validation.
        debug: Verbose logging.
    """
    ignore_missing_optional_sheets: bool = False
    skip_invalid_documents: bool = False
    anonymize: bool = False
    only_mandatory_columns: bool = False
    include_source_identifier: bool = False
    skip_rows_with_empty_mandatory_values: bool = False
    enable_domain_validation: bool = False
    max_anchor_rows: int | None = None
    all_sheets: bool = False
    domain_row_ceiling: int = DEFAULT_DOMAIN_ROW_CEILING
    debug: bool = False

    def validate(self) -> None:
        if self.anonymize and self.all_sheets:
            raise ConfigurationConflict(
                "anonymize and all-sheets cannot be enabled together: "
                "anonymization is only supported for the catalog sheets"
            )
        if self.max_anchor_rows is not None and self.max_anchor_rows <= 0:
            raise ConfigurationConflict(
                f"max-anchor-rows must be a positive integer, got {self.max_anchor_rows}"
            )
        if self.domain_row_ceiling <= 0:
            raise ConfigurationConflict(
                f"domain row ceiling must be a positive integer, got {self.domain_row_ceiling}"
            )

    def effective(self) -> MergeOptions:
        """Options with implied flags applied (all-sheets ignores missing sheets)."""
        if self.all_sheets and not self.ignore_missing_optional_sheets:
            return replace(self, ignore_missing_optional_sheets=True)
        return self
