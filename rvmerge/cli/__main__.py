from __future__ import annotations

import argparse
import os
import sys
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from rvmerge.config.catalog import default_catalog
from rvmerge.config.loader import ConfigError, load_options
from rvmerge.logging.init import get_logger, log_summary, set_debug, setup_logging
from rvmerge.logging.issue_log import DEFAULT_LOG_DIR, IssueLogBuffer
from rvmerge.models.config_models import ConfigurationConflict
from rvmerge.services.cancellation import CancellationToken
from rvmerge.services.orchestrator import MergeCancelled, MergeError, MergeOrchestrator
from rvmerge.services.progress import ProgressTracker
from rvmerge.services.summary import render_report, render_summary_line

"""CLI entrypoint.

    rvmerge INPUT_PATH [OUTPUT_PATH] [flags]

INPUT_PATH is a workbook or a directory whose .xlsx files (non-recursive,
sorted by name) are merged. The merge runs on a single worker thread so that
Ctrl-C can request cooperative cancellation.

Options come from, in increasing priority: defaults, the YAML file given by
--config or $RVMERGE_CONFIG, command line flags. A .env file in the working
directory is loaded first.
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_CANCELLED = 130

DEFAULT_OUTPUT = "RVTools_Merged.xlsx"
CONFIG_ENV = "RVMERGE_CONFIG"
LOG_DIR_ENV = "RVMERGE_LOG_DIR"


def _load_env_file(path: Path, override: bool = False) -> None:
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="rvmerge", description="Merge and validate RVTools workbook exports")
    p.add_argument("input_path", help="Workbook or directory of .xlsx workbooks")
    p.add_argument("output_path", nargs="?", help=f"Merged workbook (default: ./{DEFAULT_OUTPUT})")
    p.add_argument("-m", "--ignore-missing-optional-sheets", action="store_true",
                   help="Treat missing or incomplete optional sheets as warnings")
    p.add_argument("-i", "--skip-invalid-documents", action="store_true",
                   help="Skip structurally invalid documents instead of failing")
    p.add_argument("-a", "--anonymize", action="store_true",
                   help="Anonymize VM, DNS, cluster, host, datacenter and IP values")
    p.add_argument("-M", "--only-mandatory-columns", action="store_true",
                   help="Only merge mandatory columns")
    p.add_argument("-s", "--include-source-identifier", action="store_true",
                   help="Add a 'Source File' column")
    p.add_argument("-e", "--skip-rows-with-empty-mandatory-values", action="store_true",
                   help="Drop rows with empty mandatory values")
    p.add_argument("-z", "--enable-domain-validation", action="store_true",
                   help="Apply migration assessment rules to vInfo rows")
    p.add_argument("--max-anchor-rows", type=int, default=None, metavar="N",
                   help="Merge at most N vInfo rows and filter dependent sheets accordingly")
    p.add_argument("-A", "--all-sheets", action="store_true",
                   help="Merge every sheet found (cannot be combined with --anonymize)")
    p.add_argument("--config", default=None, help=f"YAML options file (default: ${CONFIG_ENV})")
    p.add_argument("--log-dir", default=None, help=f"Issue log directory (default: {DEFAULT_LOG_DIR})")
    p.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "ignore_missing_optional_sheets": args.ignore_missing_optional_sheets,
        "skip_invalid_documents": args.skip_invalid_documents,
        "anonymize": args.anonymize,
        "only_mandatory_columns": args.only_mandatory_columns,
        "include_source_identifier": args.include_source_identifier,
        "skip_rows_with_empty_mandatory_values": args.skip_rows_with_empty_mandatory_values,
        "enable_domain_validation": args.enable_domain_validation,
        "max_anchor_rows": args.max_anchor_rows,
        "all_sheets": args.all_sheets,
        "debug": args.debug,
    }


def scan_input(path: Path) -> list[Path]:
    """Workbooks to merge: the file itself, or the .xlsx files of a directory."""
    if path.is_dir():
        return sorted(
            (p for p in path.iterdir() if p.is_file() and p.suffix.lower() == ".xlsx"
             and not p.name.startswith("~$")),
            key=lambda p: p.name.lower(),
        )
    return [path]


def _await(future: Future, token: CancellationToken) -> Any:
    logger = get_logger()
    while True:
        try:
            return future.result(timeout=0.5)
        except TimeoutError:
            continue
        except KeyboardInterrupt:
            if not token.is_cancelled:
                token.cancel()
                logger.warning("Cancellation requested, stopping after the current row")


def main(argv: list[str] | None = None) -> int:
    # None only when run as a program, so pytest's own argv never leaks in
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)

    _load_env_file(Path(".env"))
    config_path = args.config or os.getenv(CONFIG_ENV)
    try:
        options = load_options(Path(config_path) if config_path else None, _overrides(args))
        options.validate()
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    except ConfigurationConflict as e:
        logger.error(f"options: {e}")
        return EXIT_FATAL
    if options.debug and not args.debug:
        set_debug(logger)

    input_path = Path(args.input_path)
    if not input_path.exists():
        logger.error(f"input not found: {input_path}")
        return EXIT_FATAL
    paths = scan_input(input_path)
    if not paths:
        logger.error(f"no .xlsx files found in {input_path}")
        return EXIT_FATAL
    output_path = Path(args.output_path) if args.output_path else Path.cwd() / DEFAULT_OUTPUT
    log_dir = Path(args.log_dir or os.getenv(LOG_DIR_ENV) or DEFAULT_LOG_DIR)

    logger.info(f"Merging {len(paths)} document(s) from: {input_path}")
    issue_log = IssueLogBuffer(log_dir)
    token = CancellationToken()
    try:
        with ProgressTracker() as progress, ThreadPoolExecutor(max_workers=1) as pool:
            orchestrator = MergeOrchestrator(
                catalog=default_catalog(),
                options=options,
                progress=progress,
                cancel_token=token,
                issue_log=issue_log,
            )
            result = _await(pool.submit(orchestrator.run, paths, output_path), token)
    except MergeCancelled:
        logger.error("merge cancelled, no output written")
        return EXIT_CANCELLED
    except MergeError as e:
        logger.error(f"merge: {e}")
        return EXIT_FATAL
    finally:
        try:
            written = issue_log.flush()
        except OSError as e:
            logger.warning(f"could not write issue log: {e}")
        else:
            if written is not None:
                logger.info(f"Issue log: {written}")

    for line in render_report(result):
        logger.info(line)
    if result.skipped_documents:
        logger.warning(
            f"{len(result.skipped_documents)} of {result.total_documents} document(s) were skipped"
        )
    logger.info(f"Output: {result.output_path}")

    summary_line = render_summary_line(result)
    # log_summary adds the "SUMMARY " label itself
    log_summary(summary_line[len("SUMMARY "):])
    return EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
