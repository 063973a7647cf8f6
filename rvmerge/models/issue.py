from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ValidationIssue model.

Issues are produced by structural validation (per document) and by
extraction (per row or per sheet). They are accumulated for the whole run,
shown in the summary and written to the JSON Lines issue log.

row = -1 marks issues that are not tied to a single row; sheet = "<DOCUMENT>"
marks issues that concern the document as a whole.
"""

__all__ = [
    "DOCUMENT_LEVEL",
    "ValidationIssue",
]

DOCUMENT_LEVEL = "<DOCUMENT>"


@dataclass(frozen=True)
class ValidationIssue:
    """A single recorded problem.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: Name of the source document
        sheet: Sheet name, or "<DOCUMENT>" for document-level issues
        row: 1-based worksheet row, -1 when not row specific
        issue_type: Classification in UPPER_SNAKE_CASE
        fatal: True when the issue forces exclusion of the document
        message: Human readable description
    """
    timestamp: str
    source: str
    sheet: str
    row: int
    issue_type: str
    fatal: bool
    message: str

    @staticmethod
    def create(
        source: str,
        message: str,
        *,
        fatal: bool = False,
        issue_type: str = "WARNING",
        sheet: str = DOCUMENT_LEVEL,
        row: int = -1,
    ) -> ValidationIssue:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ValidationIssue(
            timestamp=ts,
            source=source,
            sheet=sheet,
            row=row,
            issue_type=issue_type,
            fatal=fatal,
            message=message,
        )

    @property
    def source_name(self) -> str:
        return self.source

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
