"""Domain models for the RVTools merge engine.

This package contains the domain model classes shared by the reader, the
validation/reconciliation services and the orchestrator.
"""

from .cell import EMPTY, CellKind, CellValue
from .config_models import ConfigurationConflict, MergeOptions
from .document import DocumentStatus, SourceDocument
from .issue import ValidationIssue
from .merge_result import MergeResult, MergeState, SheetStat
from .schema import ColumnMapping, ReconciledSchema
from .validation_result import (
    FailureReason,
    SemanticValidationFailure,
    SemanticValidationResult,
)

__all__ = [
    # Cell values
    "CellKind",
    "CellValue",
    "EMPTY",
    # Configuration
    "ConfigurationConflict",
    "MergeOptions",
    # Processing models
    "DocumentStatus",
    "SourceDocument",
    "ValidationIssue",
    "ColumnMapping",
    "ReconciledSchema",
    "FailureReason",
    "SemanticValidationFailure",
    "SemanticValidationResult",
    "MergeResult",
    "MergeState",
    "SheetStat",
]
