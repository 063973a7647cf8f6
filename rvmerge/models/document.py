from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

"""SourceDocument domain model and DocumentStatus enum.

A SourceDocument is one input workbook for a single merge run. The
orchestrator creates it at the start of the run; validation is the only
phase that changes it (status and per-document sheet exclusions).
"""

__all__ = [
    "DocumentStatus",
    "SourceDocument",
]


class DocumentStatus(Enum):
    """Lifecycle of an input document.

    State transitions: pending → (accepted | invalid → excluded)

    - PENDING: Discovered, not yet validated
    - ACCEPTED: Passed structural validation, takes part in the merge
    - INVALID: Failed structural validation (run fails unless skipping is on)
    - EXCLUDED: Invalid and removed from the run by the skip policy
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    INVALID = "invalid"
    EXCLUDED = "excluded"


@dataclass
class SourceDocument:
    path: Path
    status: DocumentStatus = DocumentStatus.PENDING
    # Sheets dropped for this document only (non-fatal structural warning)
    excluded_sheets: set[str] = field(default_factory=set)

    @property
    def name(self) -> str:
        """Document identity used in issues, anonymization and the source column."""
        return self.path.name

    @property
    def is_accepted(self) -> bool:
        return self.status is DocumentStatus.ACCEPTED

    def includes_sheet(self, sheet_name: str) -> bool:
        return sheet_name not in self.excluded_sheets
