from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .cell import CellValue

"""Semantic (row level) validation result models.

SemanticValidationResult is filled incrementally while the anchor sheet is
extracted and is read-only once extraction has finished.
"""

__all__ = [
    "FailureReason",
    "SemanticValidationFailure",
    "SemanticValidationResult",
]


class FailureReason(Enum):
    """Why a row was diverted from the merged output.

    Declaration order is the evaluation order.
    """
    VM_COUNT_EXCEEDED = "VM_COUNT_EXCEEDED"
    MISSING_VM_UUID = "MISSING_VM_UUID"
    MISSING_OS_CONFIGURATION = "MISSING_OS_CONFIGURATION"
    DUPLICATE_VM_UUID = "DUPLICATE_VM_UUID"

    def describe(self, ceiling: int | None = None) -> str:
        if self is FailureReason.VM_COUNT_EXCEEDED:
            if ceiling is not None:
                return f"VM Count Limit Exceeded ({ceiling:,} VMs maximum)"
            return "VM Count Limit Exceeded"
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    FailureReason.MISSING_VM_UUID: "Missing VM UUID",
    FailureReason.MISSING_OS_CONFIGURATION: "Missing OS Configuration",
    FailureReason.DUPLICATE_VM_UUID: "Duplicate VM UUID",
}


@dataclass(frozen=True)
class SemanticValidationFailure:
    """A rejected row kept for export, tagged with the first failing rule."""
    row_data: tuple[CellValue, ...]
    reason: FailureReason
    source: str = ""
    row_number: int = -1


@dataclass
class SemanticValidationResult:
    sheet_name: str
    failed_rows: list[SemanticValidationFailure] = field(default_factory=list)
    reason_counts: dict[FailureReason, int] = field(
        default_factory=lambda: {reason: 0 for reason in FailureReason}
    )
    total_accepted: int = 0
    ceiling_reached: bool = False
    rows_dropped_after_ceiling: int = 0

    @property
    def total_failed(self) -> int:
        return len(self.failed_rows)

    def record_failure(self, failure: SemanticValidationFailure) -> None:
        self.failed_rows.append(failure)
        self.reason_counts[failure.reason] += 1
        if failure.reason is FailureReason.VM_COUNT_EXCEEDED:
            self.ceiling_reached = True

    def record_accepted(self) -> None:
        self.total_accepted += 1

    def record_dropped_after_ceiling(self) -> None:
        self.rows_dropped_after_ceiling += 1
