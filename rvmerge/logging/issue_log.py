from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from ..models.issue import ValidationIssue

"""Issue log buffering.

- JSON Lines with a fixed key set (timestamp, source, sheet, row, issue_type,
  fatal, message), no additional keys
- one ``<log_dir>/issues-YYYYMMDD-HHMMSS.log`` (UTC) per run, created on first
  flush
- records are buffered and appended in one go by flush()
"""

__all__ = [
    "IssueLogBuffer",
    "DEFAULT_LOG_DIR",
]

DEFAULT_LOG_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class IssueLogBuffer:
    """In-memory buffer for ValidationIssue records; not thread safe."""

    def __init__(self, log_dir: Path = DEFAULT_LOG_DIR) -> None:
        self.log_dir = log_dir
        self._records: list[ValidationIssue] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.log_dir / f"issues-{stamp}.log"
        return self._file_path

    def append(self, issue: ValidationIssue) -> None:
        self._records.append(issue)

    def extend(self, issues: Iterable[ValidationIssue]) -> None:
        self._records.extend(issues)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered issues to the log file; None when there was nothing to write."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
