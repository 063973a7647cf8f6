from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from conftest import vm_record

from rvmerge.cli.__main__ import (
    DEFAULT_OUTPUT,
    EXIT_CANCELLED,
    EXIT_FATAL,
    EXIT_SUCCESS,
    _await,
    main,
    scan_input,
)
from rvmerge.services.cancellation import CancellationToken
from rvmerge.services.orchestrator import MergeCancelled


def _two_documents(rvtools_workbook):
    rvtools_workbook("a.xlsx", [vm_record("srv1", "u1")])
    rvtools_workbook("b.xlsx", [vm_record("srv2", "u2")])


def test_merge_directory(temp_workdir: Path, rvtools_workbook, capsys):
    _two_documents(rvtools_workbook)
    code = main(["data", "merged.xlsx"])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS
    assert (temp_workdir / "merged.xlsx").exists()
    assert "INFO Merging 2 document(s) from: data" in out
    assert "SUMMARY documents=2/2 skipped=0 sheets=4 rows=" in out


def test_default_output_in_working_directory(temp_workdir: Path, rvtools_workbook):
    _two_documents(rvtools_workbook)
    assert main(["data/a.xlsx"]) == EXIT_SUCCESS
    assert (temp_workdir / DEFAULT_OUTPUT).exists()


def test_scan_input_ignores_lock_files_and_other_types(tmp_path: Path):
    for name in ["b.xlsx", "A.xlsx", "~$b.xlsx", "notes.txt"]:
        (tmp_path / name).write_bytes(b"")
    (tmp_path / "sub.xlsx").mkdir()
    assert [p.name for p in scan_input(tmp_path)] == ["A.xlsx", "b.xlsx"]
    assert scan_input(tmp_path / "b.xlsx") == [tmp_path / "b.xlsx"]


def test_missing_input(temp_workdir: Path, capsys):
    assert main(["nowhere"]) == EXIT_FATAL
    assert "ERROR input not found: nowhere" in capsys.readouterr().out


def test_empty_directory(temp_workdir: Path, capsys):
    assert main(["data"]) == EXIT_FATAL
    assert "ERROR no .xlsx files found" in capsys.readouterr().out


def test_conflicting_flags(temp_workdir: Path, rvtools_workbook, capsys):
    _two_documents(rvtools_workbook)
    assert main(["data", "-a", "-A"]) == EXIT_FATAL
    assert "ERROR options:" in capsys.readouterr().out
    assert not (temp_workdir / DEFAULT_OUTPUT).exists()


def test_bad_config_file(temp_workdir: Path, rvtools_workbook, capsys):
    _two_documents(rvtools_workbook)
    assert main(["data", "--config", "missing.yml"]) == EXIT_FATAL
    assert "ERROR config: options file not found" in capsys.readouterr().out


def test_config_from_environment(temp_workdir: Path, rvtools_workbook, monkeypatch):
    _two_documents(rvtools_workbook)
    (temp_workdir / "opts.yml").write_text("include_source_identifier: true\n", encoding="utf-8")
    monkeypatch.setenv("RVMERGE_CONFIG", "opts.yml")
    with patch("rvmerge.cli.__main__.MergeOrchestrator") as orch_cls:
        orch_cls.return_value.run.side_effect = MergeCancelled("merge cancelled")
        main(["data"])
    assert orch_cls.call_args.kwargs["options"].include_source_identifier is True


def test_structural_failure_exits_fatal_and_writes_issue_log(temp_workdir: Path, rvtools_workbook, capsys):
    rvtools_workbook("a.xlsx", [vm_record("srv1", "u1")])
    rvtools_workbook("bad.xlsx", [vm_record("srv2", "u2")], include=("vHost",))
    assert main(["data"]) == EXIT_FATAL
    out = capsys.readouterr().out
    assert "ERROR merge: 1 document(s) failed validation" in out
    assert list((temp_workdir / "logs").glob("issues-*.log"))


def test_skipped_documents_still_succeed(temp_workdir: Path, rvtools_workbook, capsys):
    rvtools_workbook("a.xlsx", [vm_record("srv1", "u1")])
    rvtools_workbook("bad.xlsx", [vm_record("srv2", "u2")], include=("vHost",))
    assert main(["data", "-i"]) == EXIT_SUCCESS
    out = capsys.readouterr().out
    assert "WARN 1 of 2 document(s) were skipped" in out
    assert "SUMMARY documents=1/2 skipped=1" in out


def test_log_dir_flag(temp_workdir: Path, rvtools_workbook):
    rvtools_workbook("a.xlsx", [vm_record("srv1", "u1")], include=("vInfo", "vHost"))
    assert main(["data", "-m", "--log-dir", "custom-logs"]) == EXIT_SUCCESS
    assert list((temp_workdir / "custom-logs").glob("issues-*.log"))


def test_cancelled_run(temp_workdir: Path, rvtools_workbook, capsys):
    _two_documents(rvtools_workbook)
    with patch(
        "rvmerge.services.orchestrator.MergeOrchestrator.run",
        side_effect=MergeCancelled("merge cancelled"),
    ):
        assert main(["data"]) == EXIT_CANCELLED
    assert "ERROR merge cancelled, no output written" in capsys.readouterr().out


def test_interrupt_requests_cancellation():
    class FakeFuture:
        def __init__(self):
            self.calls = 0

        def result(self, timeout=None):
            self.calls += 1
            if self.calls == 1:
                raise KeyboardInterrupt
            if self.calls == 2:
                raise TimeoutError
            return "done"

    token = CancellationToken()
    assert _await(FakeFuture(), token) == "done"
    assert token.is_cancelled
