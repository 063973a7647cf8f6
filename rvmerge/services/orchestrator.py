from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from ..config.catalog import SOURCE_COLUMN, SheetSchemaCatalog, default_catalog
from ..excel.reader import DocumentAccessError, try_open_document
from ..excel.writer import write_workbook
from ..logging.issue_log import IssueLogBuffer
from ..models.cell import EMPTY, CellValue
from ..models.config_models import MergeOptions
from ..models.document import DocumentStatus, SourceDocument
from ..models.issue import ValidationIssue
from ..models.merge_result import MergeResult, MergeState, SheetStat
from ..models.schema import ReconciledSchema
from ..models.validation_result import SemanticValidationResult
from .anonymizer import Anonymizer
from .cancellation import CancellationToken
from .progress import NullProgress, ProgressListener
from .reconciler import build_column_mapping, canonical_headers, reconcile_sheet
from .referential import ReferentialFilter
from .validation import (
    DocumentValidation,
    DomainValidator,
    empty_columns,
    empty_mandatory_indices,
    has_empty_mandatory_values,
    validate_document,
)

logger = logging.getLogger(__name__)

"""Merge orchestration.

MergeOrchestrator.run() drives one merge through a strictly sequential state
machine:

    validating → reconciling → extracting → writing → done

with ``failed`` reachable from every non-terminal state. Documents are opened
one at a time. Document level problems become ValidationIssue records; only
the run level failures below (and unexpected errors) leave run().
"""

__all__ = [
    "MergeCancelled",
    "MergeError",
    "MergeOrchestrator",
    "NoValidDocumentsError",
    "NoValidSheetsError",
    "StateTransitionError",
    "StructuralValidationError",
    "merge_files",
]

# Source name of issues that concern all documents of the run
ALL_DOCUMENTS = "<ALL>"

FAILURE_REASON_COLUMN = "Failure Reason"
MAP_COLUMNS = ("Source", "Original Value", "Anonymized Value")

_TRANSITIONS: dict[MergeState, frozenset[MergeState]] = {
    MergeState.VALIDATING: frozenset({MergeState.RECONCILING, MergeState.FAILED}),
    MergeState.RECONCILING: frozenset({MergeState.EXTRACTING, MergeState.FAILED}),
    MergeState.EXTRACTING: frozenset({MergeState.WRITING, MergeState.FAILED}),
    MergeState.WRITING: frozenset({MergeState.DONE, MergeState.FAILED}),
    MergeState.DONE: frozenset(),
    MergeState.FAILED: frozenset(),
}


class MergeError(Exception):
    """Base exception for run level merge failures."""


class StructuralValidationError(MergeError):
    """One or more documents failed structural validation and skipping is off."""

    def __init__(self, message: str, issues: Sequence[ValidationIssue] = ()) -> None:
        super().__init__(message)
        self.issues = list(issues)


class NoValidDocumentsError(MergeError):
    pass


class NoValidSheetsError(MergeError):
    pass


class MergeCancelled(MergeError):
    pass


class StateTransitionError(MergeError):
    pass


def derived_path(output_path: Path, suffix: str) -> Path:
    """``out.xlsx`` -> ``out_<suffix>.xlsx`` next to the merged workbook."""
    return output_path.with_name(f"{output_path.stem}_{suffix}{output_path.suffix}")


@dataclass
class _SheetPlan:
    schema: ReconciledSchema
    documents: list[SourceDocument]

    @property
    def name(self) -> str:
        return self.schema.sheet_name


@dataclass
class _SheetOutput:
    schema: ReconciledSchema
    rows: list[tuple[CellValue, ...]] = field(default_factory=list)
    filtered_rows: int = 0
    skipped_empty_rows: int = 0
    semantic: SemanticValidationResult | None = None


class MergeOrchestrator:
    def __init__(
        self,
        catalog: SheetSchemaCatalog | None = None,
        options: MergeOptions | None = None,
        progress: ProgressListener | None = None,
        cancel_token: CancellationToken | None = None,
        issue_log: IssueLogBuffer | None = None,
    ) -> None:
        self.catalog = catalog or default_catalog()
        self.options = options or MergeOptions()
        self.progress: ProgressListener = progress or NullProgress()
        self.cancel_token = cancel_token or CancellationToken()
        self.issue_log = issue_log
        self.state: MergeState = MergeState.VALIDATING
        self.state_history: list[MergeState] = []
        self.issues: list[ValidationIssue] = []
        self.documents: list[SourceDocument] = []
        self.anonymizer: Anonymizer | None = None
        # document name -> sheet names found in it
        self._sheet_names: dict[str, list[str]] = {}

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------
    def _transition(self, target: MergeState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise StateTransitionError(f"invalid transition {self.state.value} -> {target.value}")
        logger.debug("state %s -> %s", self.state.value, target.value)
        self.state = target
        self.state_history.append(target)

    def _check_cancelled(self) -> None:
        if self.cancel_token.is_cancelled:
            raise MergeCancelled("merge cancelled")

    def _record(self, issue: ValidationIssue, level: int = logging.WARNING) -> None:
        self.issues.append(issue)
        if issue.fatal:
            level = logging.ERROR
        where = issue.source if issue.sheet.startswith("<") else f"{issue.source} [{issue.sheet}]"
        logger.log(level, "%s: %s", where, issue.message)

    def run(self, paths: Sequence[Path], output_path: Path) -> MergeResult:
        start_time = datetime.now(UTC)
        self.state = MergeState.VALIDATING
        self.state_history = [MergeState.VALIDATING]
        try:
            self.options.validate()
            options = self.options.effective()
            self.anonymizer = Anonymizer() if options.anonymize else None

            accepted = self._validate(paths, options)
            self._transition(MergeState.RECONCILING)
            plans = self._reconcile(accepted, options)
            self._transition(MergeState.EXTRACTING)
            outputs = self._extract(plans, options)
            self._transition(MergeState.WRITING)
            map_path, failed_path = self._write(outputs, output_path, options)
            self._transition(MergeState.DONE)
        except Exception:
            self._transition(MergeState.FAILED)
            raise
        finally:
            if self.issue_log is not None:
                self.issue_log.extend(self.issues)

        end_time = datetime.now(UTC)
        semantic = {o.schema.sheet_name: o.semantic for o in outputs if o.semantic is not None}
        stats = [
            SheetStat(
                sheet_name=o.schema.sheet_name,
                rows=len(o.rows),
                columns=o.schema.column_count,
                filtered_rows=o.filtered_rows,
                skipped_empty_rows=o.skipped_empty_rows,
                failed_rows=o.semantic.total_failed if o.semantic is not None else 0,
            )
            for o in outputs
        ]
        return MergeResult(
            state=self.state,
            output_path=output_path,
            total_documents=len(self.documents),
            accepted_documents=[d.name for d in self.documents if d.is_accepted],
            skipped_documents=[d.name for d in self.documents if d.status is DocumentStatus.EXCLUDED],
            sheet_stats=stats,
            issues=list(self.issues),
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=(end_time - start_time).total_seconds(),
            anonymization_map_path=map_path,
            failed_validation_path=failed_path,
            semantic_results=semantic,
            anonymization_stats=self.anonymizer.statistics() if self.anonymizer else {},
        )

    # ------------------------------------------------------------------
    # validating
    # ------------------------------------------------------------------
    def _validate_one(self, doc: SourceDocument, options: MergeOptions) -> DocumentValidation:
        opened = try_open_document(doc.path)
        if opened.error is not None:
            issue = ValidationIssue.create(
                doc.name,
                f"Cannot open document: {opened.error.detail}",
                fatal=True,
                issue_type="DOCUMENT_ACCESS_ERROR",
            )
            return DocumentValidation(is_valid=False, issues=[issue], access_error=True)
        with opened.handle as handle:
            self._sheet_names[doc.name] = handle.sheet_names
            return validate_document(
                handle, doc.name, self.catalog, options.ignore_missing_optional_sheets
            )

    def _validate(self, paths: Sequence[Path], options: MergeOptions) -> list[SourceDocument]:
        self.documents = [SourceDocument(Path(p)) for p in paths]
        if not self.documents:
            raise NoValidDocumentsError("no input documents given")
        logger.info("Validating %d document(s)", len(self.documents))

        self.progress.start_phase("Validating", len(self.documents))
        for doc in self.documents:
            self._check_cancelled()
            validation = self._validate_one(doc, options)
            for issue in validation.issues:
                self._record(issue)
            if validation.is_valid:
                doc.status = DocumentStatus.ACCEPTED
                doc.excluded_sheets |= set(validation.excluded_sheets)
            elif validation.access_error or options.skip_invalid_documents:
                # unreadable documents are always left out; the run continues with the rest
                doc.status = DocumentStatus.EXCLUDED
                logger.warning("Skipping document %s", doc.name)
            else:
                doc.status = DocumentStatus.INVALID
            self.progress.advance(doc.name)
        self.progress.finish_phase()

        invalid = [d for d in self.documents if d.status is DocumentStatus.INVALID]
        if invalid:
            fatal = [i for i in self.issues if i.fatal and i.source in {d.name for d in invalid}]
            details = "; ".join(f"{i.source}: {i.message}" for i in fatal)
            raise StructuralValidationError(
                f"{len(invalid)} document(s) failed validation: {details}", fatal
            )
        accepted = [d for d in self.documents if d.is_accepted]
        if not accepted:
            raise NoValidDocumentsError("no valid documents to merge")
        return accepted

    # ------------------------------------------------------------------
    # reconciling
    # ------------------------------------------------------------------
    def _candidate_sheets(self, documents: Sequence[SourceDocument], options: MergeOptions) -> list[str]:
        present = {
            name.lower()
            for doc in documents
            for name in self._sheet_names.get(doc.name, [])
        }
        sheets = [s for s in self.catalog.sheet_names if s.lower() in present]
        if options.all_sheets:
            seen = {s.lower() for s in sheets}
            for doc in documents:
                for name in self._sheet_names.get(doc.name, []):
                    if name.lower() not in seen and not self.catalog.is_known_sheet(name):
                        seen.add(name.lower())
                        sheets.append(name)
        return sheets

    def _reconcile(self, documents: list[SourceDocument], options: MergeOptions) -> list[_SheetPlan]:
        sheets = self._candidate_sheets(documents, options)
        logger.info("Reconciling %d sheet(s) over %d document(s)", len(sheets), len(documents))

        # sheet -> document name -> raw header
        headers: dict[str, dict[str, list[str | None]]] = {s: {} for s in sheets}
        participants: dict[str, list[SourceDocument]] = {s: [] for s in sheets}

        self.progress.start_phase("Reconciling", len(documents))
        for doc in documents:
            self._check_cancelled()
            opened = try_open_document(doc.path)
            if opened.error is not None:
                self._record(ValidationIssue.create(
                    doc.name,
                    f"Cannot open document for reconciliation: {opened.error.detail}",
                    issue_type="DOCUMENT_ACCESS_ERROR",
                ))
                doc.status = DocumentStatus.EXCLUDED
                self.progress.advance(doc.name)
                continue
            with opened.handle as handle:
                for sheet in sheets:
                    if not handle.sheet_exists(sheet) or not doc.includes_sheet(sheet):
                        continue
                    try:
                        headers[sheet][doc.name] = handle.read_header_row(sheet)
                    except DocumentAccessError as e:
                        self._record(ValidationIssue.create(
                            doc.name,
                            f"Sheet left out for this document: {e.detail}",
                            issue_type="DOCUMENT_ACCESS_ERROR",
                            sheet=sheet,
                        ))
                        doc.excluded_sheets.add(sheet)
                        continue
                    participants[sheet].append(doc)
            self.progress.advance(doc.name)
        self.progress.finish_phase()

        plans: list[_SheetPlan] = []
        for sheet in sheets:
            if not participants[sheet]:
                continue
            header_sets = {
                name: canonical_headers(raw, sheet, self.catalog)
                for name, raw in headers[sheet].items()
            }
            rec = reconcile_sheet(
                sheet,
                header_sets,
                self.catalog,
                mandatory_only=options.only_mandatory_columns,
                include_source_identifier=options.include_source_identifier,
            )
            for issue in rec.warnings:
                self._record(issue)
            if rec.is_empty:
                self._record(ValidationIssue.create(
                    ALL_DOCUMENTS,
                    f"Sheet '{sheet}' has no column common to all documents and is left out",
                    issue_type="NO_COMMON_COLUMNS",
                    sheet=sheet,
                ))
                continue
            logger.debug("sheet %s: %d column(s)", sheet, rec.schema.column_count)
            plans.append(_SheetPlan(rec.schema, participants[sheet]))

        if not plans:
            raise NoValidSheetsError("no sheet has columns common to all documents")
        return plans

    # ------------------------------------------------------------------
    # extracting
    # ------------------------------------------------------------------
    def _extract(self, plans: list[_SheetPlan], options: MergeOptions) -> list[_SheetOutput]:
        cap = options.max_anchor_rows
        referential = ReferentialFilter(self.catalog)
        anchor_retained = 0
        cap_reported = False
        outputs: list[_SheetOutput] = []

        self.progress.start_phase("Extracting", sum(len(p.documents) for p in plans))
        for plan in plans:
            schema = plan.schema
            is_anchor = self.catalog.is_anchor(plan.name)
            out = _SheetOutput(schema)
            empty_idx = empty_mandatory_indices(schema, self.catalog)
            anon_idx = self.anonymizer.column_indices(schema) if self.anonymizer else {}
            source_idx = schema.index_of(SOURCE_COLUMN) if options.include_source_identifier else -1
            domain: DomainValidator | None = None
            if is_anchor and options.enable_domain_validation:
                domain = DomainValidator(schema, options.domain_row_ceiling)
                out.semantic = domain.result

            logger.info("Extracting sheet %s from %d document(s)", plan.name, len(plan.documents))
            for doc in plan.documents:
                self._check_cancelled()
                if is_anchor and cap is not None and anchor_retained >= cap:
                    if not cap_reported:
                        self._report_cap(doc, plan.name, cap)
                        cap_reported = True
                    self.progress.advance(f"{plan.name}: {doc.name}")
                    continue

                opened = try_open_document(doc.path)
                if opened.error is not None:
                    self._record(ValidationIssue.create(
                        doc.name,
                        f"Cannot open document for extraction: {opened.error.detail}",
                        issue_type="DOCUMENT_ACCESS_ERROR",
                        sheet=plan.name,
                    ))
                    self.progress.advance(f"{plan.name}: {doc.name}")
                    continue

                filtered = 0
                failed_before = domain.result.total_failed if domain else 0
                with opened.handle as handle:
                    raw_header = handle.read_header_row(plan.name)
                    mapping = build_column_mapping(raw_header, plan.name, schema, self.catalog)
                    link = None
                    if cap is not None:
                        if is_anchor:
                            referential.bind_anchor(raw_header)
                        else:
                            link = referential.linking_key(raw_header, plan.name)
                    for row_number, cells in handle.read_data_rows(plan.name):
                        self._check_cancelled()
                        if is_anchor and cap is not None and anchor_retained >= cap:
                            if not cap_reported:
                                self._report_cap(doc, plan.name, cap)
                                cap_reported = True
                            break

                        row = [EMPTY] * schema.column_count
                        for m in mapping:
                            if m.source_index < len(cells):
                                row[m.reconciled_index] = cells[m.source_index]
                        if self.anonymizer is not None and anon_idx:
                            self.anonymizer.anonymize_row(row, anon_idx, doc.name)

                        if empty_idx and has_empty_mandatory_values(row, empty_idx):
                            missing = empty_columns(row, empty_idx, schema)
                            self._record(ValidationIssue.create(
                                doc.name,
                                f"Row {row_number} in sheet '{plan.name}' has empty value(s) in "
                                f"mandatory column(s): {', '.join(missing)}",
                                issue_type="EMPTY_MANDATORY_VALUES",
                                sheet=plan.name,
                                row=row_number,
                            ), logging.DEBUG)
                            if options.skip_rows_with_empty_mandatory_values:
                                out.skipped_empty_rows += 1
                                continue

                        if source_idx >= 0:
                            row[source_idx] = CellValue.text(doc.name)

                        if domain is not None:
                            was_reached = domain.result.ceiling_reached
                            if not domain.accept(row, doc.name, row_number):
                                if domain.result.ceiling_reached and not was_reached:
                                    self._record(ValidationIssue.create(
                                        doc.name,
                                        f"VM count limit of {domain.ceiling:,} reached at row {row_number}; "
                                        "further rows are not merged",
                                        issue_type="VM_COUNT_EXCEEDED",
                                        sheet=plan.name,
                                        row=row_number,
                                    ))
                                continue

                        if is_anchor:
                            if cap is not None:
                                referential.register_anchor_row(cells)
                            anchor_retained += 1
                        elif link is not None and not referential.retains(cells, link):
                            filtered += 1
                            continue

                        out.rows.append(tuple(row))

                if filtered:
                    out.filtered_rows += filtered
                    self._record(ValidationIssue.create(
                        doc.name,
                        f"{filtered} row(s) of sheet '{plan.name}' filtered out: "
                        f"{link.column if link else 'key'} not among the retained '{self.catalog.anchor_sheet}' rows",
                        issue_type="ROWS_FILTERED",
                        sheet=plan.name,
                    ))
                if domain is not None and domain.result.total_failed > failed_before:
                    self._record(ValidationIssue.create(
                        doc.name,
                        f"{domain.result.total_failed - failed_before} row(s) of sheet '{plan.name}' "
                        "failed domain validation",
                        issue_type="DOMAIN_VALIDATION_FAILED",
                        sheet=plan.name,
                    ))
                self.progress.advance(f"{plan.name}: {doc.name}")

            if domain is not None and domain.result.rows_dropped_after_ceiling:
                logger.warning(
                    "%s: %d row(s) dropped after the VM count limit",
                    plan.name,
                    domain.result.rows_dropped_after_ceiling,
                )
            outputs.append(out)
        self.progress.finish_phase()
        return outputs

    def _report_cap(self, doc: SourceDocument, sheet: str, cap: int) -> None:
        self._record(ValidationIssue.create(
            doc.name,
            f"Row limit of {cap} for sheet '{sheet}' reached; no further '{sheet}' rows are merged",
            issue_type="ANCHOR_ROW_CAP_REACHED",
            sheet=sheet,
        ))

    # ------------------------------------------------------------------
    # writing
    # ------------------------------------------------------------------
    def _write(
        self, outputs: list[_SheetOutput], output_path: Path, options: MergeOptions
    ) -> tuple[Path | None, Path | None]:
        self.progress.start_phase("Writing", 3)
        self._check_cancelled()

        write_workbook(
            output_path,
            {o.schema.sheet_name: (o.schema.columns, o.rows) for o in outputs},
        )
        logger.info("Merged workbook written: %s", output_path)
        self.progress.advance(output_path.name)

        map_path: Path | None = None
        if self.anonymizer is not None:
            map_sheets = {}
            for category, docs in self.anonymizer.mappings().items():
                rows = [
                    (doc, original, substitute)
                    for doc, values in docs.items()
                    for original, substitute in values.items()
                ]
                if rows:
                    map_sheets[category] = (MAP_COLUMNS, rows)
            if map_sheets:
                map_path = write_workbook(derived_path(output_path, "AnonymizationMap"), map_sheets)
                logger.info("Anonymization map written: %s", map_path)
        self.progress.advance("anonymization map")

        failed_path: Path | None = None
        if options.enable_domain_validation:
            failed_sheets = {}
            for o in outputs:
                if o.semantic is None or not o.semantic.failed_rows:
                    continue
                failed_sheets[o.schema.sheet_name] = (
                    o.schema.columns + (FAILURE_REASON_COLUMN,),
                    [
                        f.row_data + (CellValue.text(f.reason.describe(options.domain_row_ceiling)),)
                        for f in o.semantic.failed_rows
                    ],
                )
            if failed_sheets:
                failed_path = write_workbook(derived_path(output_path, "FailedValidation"), failed_sheets)
                logger.info("Failed validation rows written: %s", failed_path)
        self.progress.advance("failed validation")
        self.progress.finish_phase()
        return map_path, failed_path


def merge_files(
    paths: Sequence[Path],
    output_path: Path,
    options: MergeOptions | None = None,
    catalog: SheetSchemaCatalog | None = None,
    **kwargs,
) -> MergeResult:
    """Run one merge with a fresh orchestrator."""
    return MergeOrchestrator(catalog=catalog, options=options, **kwargs).run(paths, output_path)
