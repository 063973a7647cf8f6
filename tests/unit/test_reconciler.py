from __future__ import annotations

import random

from rvmerge.models.schema import ColumnMapping
from rvmerge.services.reconciler import (
    build_column_mapping,
    canonical_headers,
    reconcile_sheet,
)

OS = "OS according to the configuration file"


def test_canonical_headers_resolve_aliases_and_drop_blanks(catalog):
    raw = ["vInfoVMName", None, "  ", "CPUs", "VM", "vInfoUUID"]
    assert canonical_headers(raw, "vInfo", catalog) == ["VM", "CPUs", "VM UUID"]


def test_intersection_keeps_first_document_order(catalog):
    rec = reconcile_sheet("vInfo", {
        "a.xlsx": ["VM", "CPUs", "Memory", OS],
        "b.xlsx": [OS, "Memory", "VM", "CPUs", "ExtraCol"],
    }, catalog)
    assert rec.schema.columns == ("VM", "CPUs", "Memory", OS)
    assert rec.warnings == []
    assert not rec.is_empty


def test_intersection_matches_set_intersection(catalog):
    rng = random.Random(7)
    universe = [f"c{n}" for n in range(12)]
    for _ in range(25):
        header_sets = {
            f"d{d}.xlsx": rng.sample(universe, rng.randint(1, len(universe)))
            for d in range(rng.randint(1, 4))
        }
        rec = reconcile_sheet("vSnapshot", header_sets, catalog)
        expected = set.intersection(*(set(h) for h in header_sets.values()))
        assert set(rec.schema.columns) == expected
        first = next(iter(header_sets.values()))
        assert list(rec.schema.columns) == [c for c in first if c in expected]


def test_mandatory_only_subset_and_warnings(catalog):
    rec = reconcile_sheet("vMemory", {
        "a.xlsx": ["VM", "VM UUID", "Size MiB", "Reservation", "Limit"],
        "b.xlsx": ["VM", "VM UUID", "Size MiB", "Limit"],
    }, catalog, mandatory_only=True)
    assert rec.schema.columns == ("VM", "VM UUID", "Size MiB")
    assert len(rec.warnings) == 1
    warning = rec.warnings[0]
    assert warning.source == "b.xlsx"
    assert "Reservation" in warning.message
    assert not warning.fatal


def test_source_column_appended_once(catalog):
    rec = reconcile_sheet("vHost", {"a.xlsx": ["Host", "Cluster"]}, catalog, include_source_identifier=True)
    assert rec.schema.columns == ("Host", "Cluster", "Source File")
    assert rec.common_column_count == 2

    native = reconcile_sheet(
        "vHost", {"a.xlsx": ["Host", "Source File"]}, catalog, include_source_identifier=True
    )
    assert native.schema.columns == ("Host", "Source File")


def test_no_common_columns(catalog):
    rec = reconcile_sheet(
        "vHost", {"a.xlsx": ["Host"], "b.xlsx": ["Cluster"]}, catalog, include_source_identifier=True
    )
    assert rec.is_empty
    assert rec.schema.columns == ()


def test_column_mapping(catalog):
    rec = reconcile_sheet("vInfo", {
        "a.xlsx": ["VM", "CPUs", "Memory"],
        "b.xlsx": ["Memory", "vInfoVMName", "Extra", "CPUs"],
    }, catalog)
    mapping = build_column_mapping(["Memory", "vInfoVMName", "Extra", "CPUs"], "vInfo", rec.schema, catalog)
    assert mapping == [ColumnMapping(0, 2), ColumnMapping(1, 0), ColumnMapping(3, 1)]


def test_column_mapping_first_occurrence_wins(catalog):
    rec = reconcile_sheet("vInfo", {"a.xlsx": ["VM", "CPUs"]}, catalog)
    mapping = build_column_mapping(["vInfoVMName", "VM", None, "CPUs"], "vInfo", rec.schema, catalog)
    targets = [m.reconciled_index for m in mapping]
    assert mapping[0] == ColumnMapping(0, 0)
    assert len(targets) == len(set(targets))
    assert all(0 <= t < rec.schema.column_count for t in targets)
