from __future__ import annotations

from ..models.merge_result import MergeResult
from ..models.validation_result import FailureReason

"""Summary line and human readable report for a finished merge.

SUMMARY line format:
SUMMARY documents=<accepted>/<total> skipped=<n> sheets=<n> rows=<n>
failed_rows=<n> anonymized=<n> issues=<n> elapsed_sec=<x>
"""

__all__ = [
    "render_report",
    "render_summary_line",
]


def _format_elapsed(seconds: float) -> str:
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        # avoid scientific notation
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: MergeResult) -> str:
    """Render the single-line SUMMARY for ``result``.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from rvmerge.models.merge_result import MergeResult, MergeState, SheetStat
        >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> result = MergeResult(
        ...     state=MergeState.DONE, output_path=None, total_documents=2,
        ...     accepted_documents=["a.xlsx", "b.xlsx"], skipped_documents=[],
        ...     sheet_stats=[SheetStat("vInfo", 10, 13)], issues=[],
        ...     start_time=t, end_time=t, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY documents=2/2 skipped=0 sheets=1 rows=10 failed_rows=0 anonymized=0 issues=0 elapsed_sec=2'
    """
    return (
        f"SUMMARY documents={len(result.accepted_documents)}/{result.total_documents} "
        f"skipped={len(result.skipped_documents)} "
        f"sheets={len(result.sheet_stats)} "
        f"rows={result.total_rows} "
        f"failed_rows={result.total_failed_rows} "
        f"anonymized={result.total_anonymized} "
        f"issues={len(result.issues)} "
        f"elapsed_sec={_format_elapsed(result.elapsed_seconds)}"
    )


def render_report(result: MergeResult, max_issues: int = 50) -> list[str]:
    """Report lines: skipped documents, per-sheet statistics, domain failures, warnings."""
    lines: list[str] = []
    if result.skipped_documents:
        lines.append(f"Skipped documents ({len(result.skipped_documents)}):")
        for name in result.skipped_documents:
            reasons = [i.message for i in result.issues if i.source == name and i.fatal]
            lines.append(f"  - {name}: {'; '.join(reasons) if reasons else 'not readable'}")

    lines.append("Sheets:")
    for stat in result.sheet_stats:
        line = f"  - {stat.sheet_name}: {stat.rows} row(s), {stat.columns} column(s)"
        extras = []
        if stat.filtered_rows:
            extras.append(f"{stat.filtered_rows} filtered")
        if stat.skipped_empty_rows:
            extras.append(f"{stat.skipped_empty_rows} skipped for empty mandatory values")
        if stat.failed_rows:
            extras.append(f"{stat.failed_rows} failed domain validation")
        if extras:
            line += f" ({', '.join(extras)})"
        lines.append(line)

    for sheet, semantic in result.semantic_results.items():
        if not semantic.total_failed and not semantic.rows_dropped_after_ceiling:
            continue
        lines.append(f"Domain validation ({sheet}):")
        for reason in FailureReason:
            count = semantic.reason_counts.get(reason, 0)
            if count:
                lines.append(f"  - {reason.describe()}: {count}")
        if semantic.rows_dropped_after_ceiling:
            lines.append(f"  - Rows dropped after limit: {semantic.rows_dropped_after_ceiling}")

    if result.anonymization_stats:
        lines.append("Anonymized values:")
        for category, per_doc in result.anonymization_stats.items():
            lines.append(f"  - {category}: {sum(per_doc.values())}")

    warnings = result.warnings
    if warnings:
        lines.append(f"Warnings ({len(warnings)}):")
        for issue in warnings[:max_issues]:
            where = issue.source if issue.row < 0 else f"{issue.source} row {issue.row}"
            lines.append(f"  - {where}: {issue.message}")
        if len(warnings) > max_issues:
            lines.append(f"  ... {len(warnings) - max_issues} more (see the issue log)")
    return lines
