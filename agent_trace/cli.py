"""Command line entry point: compile a project's transcripts into a report.

Usage:
  ato
  ato --project-path ~/.claude/projects/-Users-me-app --recent 50
  ato --print
  ato --list
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from agent_trace import config
from agent_trace.date_utils import format_time_ago
from agent_trace.discovery import find_conversation_files, resolve_conversation_dirs, select_recent
from agent_trace.orchestrator import ConversationCompileError, ProgressCallback, run_batch
from agent_trace.report import ReportStore, format_bytes, generate_report

logger = logging.getLogger("ato")


def _progress_logger(started: float) -> ProgressCallback:
    def _report(done: int, total: int) -> None:
        elapsed = max(time.monotonic() - started, 1e-6)
        remaining = total - done
        eta = round(remaining / (done / elapsed)) if done and remaining > 0 else 0
        percent = round(done * 100 / total) if total else 100
        logger.info("Progress: %d/%d files (%d%%) | %ds elapsed, ~%ds remaining", done, total, percent, elapsed, eta)

    return _report


def _list_reports(store: ReportStore, project_path: Path) -> int:
    reports = store.list_reports()
    if not reports:
        print("No reports found for this project.")
        print(f"\nExpected location: {store.directory}")
        print("\nRun without --list to generate a new report.")
        return 0

    print(f"\nAvailable reports for: {project_path}")
    print(f"Location: {store.directory}\n")
    print("-" * 80)
    for index, report in enumerate(reports, start=1):
        print(f"{index}. {report.stamp}")
        print(f"   Created: {format_time_ago(report.created)} | Size: {format_bytes(report.size)}")
        print(f"   Path: {report.path}")
        print("")
    print("-" * 80)
    print(f"Total: {len(reports)} report(s)\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ato", description="Compile agent conversation history into an annotated timeline report")
    parser.add_argument("--project-path", default="", help="Project directory or transcript directory (default: current directory)")
    parser.add_argument("--recent", type=int, default=None, help="Only analyze the N most recently modified conversations")
    parser.add_argument("--concurrency", type=int, default=None, help="Worker processes for compilation (default: auto)")
    parser.add_argument("--timeout", type=float, default=None, help="Per-conversation compile timeout in seconds")
    parser.add_argument(
        "--isolate-failures",
        action="store_true",
        default=None,
        help="Skip conversations that fail to compile instead of aborting the batch",
    )
    parser.add_argument("-p", "--print", dest="print_report", action="store_true", help="Write the report to stdout")
    parser.add_argument("-l", "--list", dest="list_reports", action="store_true", help="List stored reports for the project")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    project_path = Path(args.project_path or os.getcwd()).expanduser()
    store = ReportStore(config.REPORTS_DIR, project_path)
    if args.list_reports:
        return _list_reports(store, project_path)

    try:
        directories = resolve_conversation_dirs(project_path)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    files = [path for directory in directories for path in find_conversation_files(directory)]
    selected = select_recent(files, args.recent)
    logger.info("Found %d conversation file(s), analyzing %d", len(files), len(selected))

    try:
        batch = run_batch(
            selected,
            progress=_progress_logger(time.monotonic()),
            concurrency=args.concurrency,
            unit_timeout=args.timeout,
            isolate_failures=args.isolate_failures,
        )
    except ConversationCompileError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if batch.conversations == 0:
        print("Error: No valid conversation data found", file=sys.stderr)
        return 1

    report = generate_report(batch.sorted_by_start(newest_first=True))
    report_path = store.save(report)
    if args.print_report:
        print(report)
    else:
        print(f"Report saved at: {report_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
