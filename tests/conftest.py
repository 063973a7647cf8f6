# Shared pytest fixtures
from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from rvmerge.config.catalog import default_catalog
from rvmerge.logging.init import reset_logging

VINFO_COLUMNS = [
    "VM",
    "Powerstate",
    "Template",
    "SRM Placeholder",
    "CPUs",
    "Memory",
    "NICs",
    "Disks",
    "In Use MiB",
    "Provisioned MiB",
    "OS according to the configuration file",
    "Creation Date",
    "VM UUID",
    "DNS Name",
    "Primary IP Address",
    "Host",
    "Cluster",
    "Datacenter",
]
VHOST_COLUMNS = [
    "Host", "Datacenter", "Cluster", "CPU Model", "Speed", "# CPU", "Cores per CPU",
    "# Cores", "CPU usage %", "# Memory", "Memory usage %",
]
VPARTITION_COLUMNS = ["VM", "VM UUID", "Disk", "Capacity MiB", "Consumed MiB"]
VMEMORY_COLUMNS = ["VM", "VM UUID", "Size MiB", "Reservation"]


def vm_record(vm: str, uuid: str | None, **overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "VM": vm,
        "Powerstate": "poweredOn",
        "Template": False,
        "SRM Placeholder": False,
        "CPUs": 2,
        "Memory": 4096,
        "NICs": 1,
        "Disks": 1,
        "In Use MiB": 10240,
        "Provisioned MiB": 40960,
        "OS according to the configuration file": "Ubuntu Linux (64-bit)",
        "Creation Date": datetime(2023, 5, 1, 8, 30),
        "VM UUID": uuid,
        "DNS Name": f"{vm}.corp.local",
        "Primary IP Address": "10.0.0.1",
        "Host": "esx01",
        "Cluster": "cl01",
        "Datacenter": "dc01",
    }
    record.update(overrides)
    return record


def host_record(host: str, **overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "Host": host, "Datacenter": "dc01", "Cluster": "cl01", "CPU Model": "Xeon Gold",
        "Speed": 2600, "# CPU": 2, "Cores per CPU": 16, "# Cores": 32,
        "CPU usage %": 12, "# Memory": 262144, "Memory usage %": 40,
    }
    record.update(overrides)
    return record


def sheet_rows(columns: Sequence[str], records: Iterable[dict[str, Any]]) -> list[list[Any]]:
    """Header row followed by one row per record, in ``columns`` order."""
    return [list(columns)] + [[r.get(c) for c in columns] for r in records]


def write_xlsx(path: Path, sheets: dict[str, list[list[Any]]]) -> Path:
    """Write raw rows (row 1 = header) to a real workbook."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


def build_rvtools(
    path: Path,
    vms: Sequence[dict[str, Any]],
    *,
    vinfo_columns: Sequence[str] = VINFO_COLUMNS,
    include: Sequence[str] = ("vInfo", "vHost", "vPartition", "vMemory"),
    extra_sheets: dict[str, list[list[Any]]] | None = None,
) -> Path:
    """RVTools-like workbook; dependent sheets are derived from ``vms``."""
    sheets: dict[str, list[list[Any]]] = {}
    if "vInfo" in include:
        sheets["vInfo"] = sheet_rows(vinfo_columns, vms)
    if "vHost" in include:
        hosts = list(dict.fromkeys(v["Host"] for v in vms if v.get("Host")))
        sheets["vHost"] = sheet_rows(VHOST_COLUMNS, [host_record(h) for h in hosts])
    if "vPartition" in include:
        sheets["vPartition"] = sheet_rows(VPARTITION_COLUMNS, [
            {"VM": v["VM"], "VM UUID": v["VM UUID"], "Disk": "/", "Capacity MiB": 40960, "Consumed MiB": 8192}
            for v in vms
        ])
    if "vMemory" in include:
        sheets["vMemory"] = sheet_rows(VMEMORY_COLUMNS, [
            {"VM": v["VM"], "VM UUID": v["VM UUID"], "Size MiB": v.get("Memory", 4096), "Reservation": 0}
            for v in vms
        ])
    sheets.update(extra_sheets or {})
    return write_xlsx(path, sheets)


def read_sheet(path: Path, sheet: str) -> pd.DataFrame:
    """Read an output sheet back with its header row."""
    return pd.read_excel(path, sheet_name=sheet, engine="openpyxl")


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "data").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RVMERGE_CONFIG", raising=False)
    monkeypatch.delenv("RVMERGE_LOG_DIR", raising=False)
    return tmp_path


@pytest.fixture()
def catalog():
    return default_catalog()


@pytest.fixture()
def rvtools_workbook(tmp_path: Path) -> Callable[..., Path]:
    """Factory: rvtools_workbook("a.xlsx", [vm_record(...), ...], **kwargs) -> Path."""
    def _make(name: str, vms: Sequence[dict[str, Any]], **kwargs: Any) -> Path:
        return build_rvtools(tmp_path / "data" / name, vms, **kwargs)
    return _make


@pytest.fixture()
def sample_options_yaml() -> str:
    return """ignore_missing_optional_sheets: true
skip_invalid_documents: false
anonymize: false
include_source_identifier: true
max_anchor_rows: 100
"""
