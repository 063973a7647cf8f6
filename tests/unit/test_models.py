from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from rvmerge.models import (
    EMPTY,
    CellKind,
    CellValue,
    ConfigurationConflict,
    DocumentStatus,
    FailureReason,
    MergeOptions,
    ReconciledSchema,
    SemanticValidationFailure,
    SemanticValidationResult,
    SourceDocument,
    ValidationIssue,
)


class TestCellValue:
    @pytest.mark.parametrize("raw", [None, float("nan"), np.nan, pd.NaT])
    def test_missing_values_become_empty(self, raw):
        assert CellValue.from_raw(raw) is EMPTY

    def test_numpy_scalars_are_unwrapped(self):
        cell = CellValue.from_raw(np.int64(42))
        assert cell.kind is CellKind.NUMBER
        assert cell.value == 42 and type(cell.value) is int

    def test_bool_is_not_a_number(self):
        assert CellValue.from_raw(True).kind is CellKind.BOOLEAN
        assert CellValue.from_raw(np.bool_(False)) == CellValue.boolean(False)

    def test_dates(self):
        ts = pd.Timestamp("2024-02-03 04:05:06")
        assert CellValue.from_raw(ts) == CellValue.date(datetime(2024, 2, 3, 4, 5, 6))
        assert CellValue.from_raw(date(2024, 2, 3)).value == datetime(2024, 2, 3)
        assert CellValue.from_raw(np.datetime64("2024-02-03")).kind is CellKind.DATE

    def test_blank_text(self):
        assert CellValue.text("   ").is_blank()
        assert not CellValue.text("x").is_blank()
        assert EMPTY.is_blank()
        assert not CellValue.number(0).is_blank()

    def test_to_text(self):
        assert CellValue.number(4096.0).to_text() == "4096"
        assert CellValue.number(1.5).to_text() == "1.5"
        assert EMPTY.to_text() == ""
        assert CellValue.date(datetime(2024, 1, 2)).to_text() == "2024-01-02T00:00:00"

    def test_to_native(self):
        assert EMPTY.to_native() is None
        assert CellValue.number(3).to_native() == 3


def test_source_document_status_and_sheet_exclusion():
    doc = SourceDocument(Path("/tmp/x/a.xlsx"))
    assert doc.name == "a.xlsx"
    assert doc.status is DocumentStatus.PENDING
    assert not doc.is_accepted
    doc.excluded_sheets.add("vHost")
    assert not doc.includes_sheet("vHost")
    assert doc.includes_sheet("vMemory")


def test_validation_issue_json_line():
    issue = ValidationIssue.create("a.xlsx", "broken", fatal=True, issue_type="X", sheet="vInfo", row=7)
    data = json.loads(issue.to_json_line())
    assert set(data) == {"timestamp", "source", "sheet", "row", "issue_type", "fatal", "message"}
    assert data["timestamp"].endswith("Z")
    assert data["row"] == 7 and data["fatal"] is True
    assert issue.source_name == "a.xlsx"


def test_validation_issue_defaults_to_document_level():
    issue = ValidationIssue.create("a.xlsx", "warn")
    assert issue.sheet == "<DOCUMENT>"
    assert issue.row == -1
    assert issue.fatal is False


def test_reconciled_schema_lookup():
    schema = ReconciledSchema("vInfo", ("VM", "CPUs"))
    assert schema.column_count == 2
    assert schema.index_of("CPUs") == 1
    assert schema.index_of("Nope") == -1
    assert "VM" in schema


class TestSemanticValidationResult:
    def test_counts_start_at_zero_for_every_reason(self):
        result = SemanticValidationResult("vInfo")
        assert set(result.reason_counts) == set(FailureReason)
        assert all(v == 0 for v in result.reason_counts.values())

    def test_record_failure_and_ceiling(self):
        result = SemanticValidationResult("vInfo")
        result.record_failure(SemanticValidationFailure((EMPTY,), FailureReason.MISSING_VM_UUID))
        assert result.total_failed == 1
        assert not result.ceiling_reached
        result.record_failure(SemanticValidationFailure((EMPTY,), FailureReason.VM_COUNT_EXCEEDED))
        assert result.ceiling_reached
        assert result.reason_counts[FailureReason.VM_COUNT_EXCEEDED] == 1

    def test_describe(self):
        assert FailureReason.VM_COUNT_EXCEEDED.describe(20_000) == "VM Count Limit Exceeded (20,000 VMs maximum)"
        assert FailureReason.MISSING_VM_UUID.describe() == "Missing VM UUID"
        assert FailureReason.MISSING_OS_CONFIGURATION.describe() == "Missing OS Configuration"
        assert FailureReason.DUPLICATE_VM_UUID.describe() == "Duplicate VM UUID"


class TestMergeOptions:
    def test_defaults_are_valid(self):
        opts = MergeOptions()
        opts.validate()
        assert opts.domain_row_ceiling == 20_000
        assert opts.max_anchor_rows is None

    def test_anonymize_conflicts_with_all_sheets(self):
        with pytest.raises(ConfigurationConflict):
            MergeOptions(anonymize=True, all_sheets=True).validate()

    @pytest.mark.parametrize("cap", [0, -3])
    def test_non_positive_cap_rejected(self, cap):
        with pytest.raises(ConfigurationConflict):
            MergeOptions(max_anchor_rows=cap).validate()

    def test_all_sheets_implies_ignore_missing(self):
        opts = MergeOptions(all_sheets=True).effective()
        assert opts.ignore_missing_optional_sheets is True
        plain = MergeOptions()
        assert plain.effective() is plain

