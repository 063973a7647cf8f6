from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .issue import ValidationIssue
from .validation_result import SemanticValidationResult

"""Merge run result models.

MergeState is the orchestrator state machine; MergeResult aggregates what a
finished run produced for the summary line and the human readable report.
"""

__all__ = [
    "MergeResult",
    "MergeState",
    "SheetStat",
]


class MergeState(Enum):
    """Orchestrator states.

    Transitions are strictly sequential:
    validating → reconciling → extracting → writing → done,
    and failed is reachable from every non-terminal state.
    """
    VALIDATING = "validating"
    RECONCILING = "reconciling"
    EXTRACTING = "extracting"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SheetStat:
    """Per-sheet statistics of the merged output."""
    sheet_name: str
    rows: int  # merged data rows, header excluded
    columns: int
    filtered_rows: int = 0  # dropped by referential filtering
    skipped_empty_rows: int = 0  # dropped for blank mandatory values
    failed_rows: int = 0  # diverted by domain validation


@dataclass(frozen=True)
class MergeResult:
    state: MergeState
    output_path: Path | None
    total_documents: int
    accepted_documents: list[str]
    skipped_documents: list[str]
    sheet_stats: list[SheetStat]
    issues: list[ValidationIssue]
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    anonymization_map_path: Path | None = None
    failed_validation_path: Path | None = None
    semantic_results: dict[str, SemanticValidationResult] = field(default_factory=dict)
    anonymization_stats: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def total_rows(self) -> int:
        return sum(s.rows for s in self.sheet_stats)

    @property
    def total_failed_rows(self) -> int:
        return sum(r.total_failed for r in self.semantic_results.values())

    @property
    def total_anonymized(self) -> int:
        return sum(sum(per_doc.values()) for per_doc in self.anonymization_stats.values())

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if not i.fatal]

    @property
    def has_skipped_documents(self) -> bool:
        return bool(self.skipped_documents)
