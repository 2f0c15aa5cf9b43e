"""Markdown report assembly and on-disk report storage."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from agent_trace.date_utils import (
    format_session_duration,
    format_session_start,
    parse_timestamp,
    report_timestamp,
)
from agent_trace.discovery import mapped_project_name
from agent_trace.model_identity import canonical_model_name, is_real_model, model_display_name
from agent_trace.models import CompiledConversation
from agent_trace.pricing import PricingTable, estimate_cost_split, format_cost, get_pricing_table

logger = logging.getLogger("ato.report")

_HEREDOC_JQ = (
    "jq -r '.message.content[]? | select(.type? == \"tool_use\" and .id == \"TOOL_ID\") "
    "| .input.command' CONVERSATION_FILE.jsonl"
)


@dataclass
class UsageTotals:
    input_tokens: int = 0
    output_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost


def aggregate_usage(
    results: list[CompiledConversation],
    pricing: Optional[PricingTable] = None,
) -> tuple[UsageTotals, list[str]]:
    """Sum assistant usage over all records; returns totals and the models seen (first-seen order)."""
    table = pricing or get_pricing_table()
    totals = UsageTotals()
    models: dict[str, str] = {}
    for result in results:
        for record in result.records:
            if record.type != "assistant" or not record.usage:
                continue
            usage = record.usage
            totals.input_tokens += usage.input_tokens
            totals.output_tokens += usage.output_tokens
            input_cost, output_cost = estimate_cost_split(usage.input_tokens, usage.output_tokens, record.model, table)
            totals.input_cost += input_cost
            totals.output_cost += output_cost
            if is_real_model(record.model):
                models.setdefault(canonical_model_name(record.model), record.model or "")
    return totals, list(models.values())


def tool_usage(results: list[CompiledConversation]) -> Counter[str]:
    counter: Counter[str] = Counter()
    for result in results:
        for entry in result.entries:
            if entry.kind == "action" and entry.tool:
                counter[entry.tool] += 1
    return counter


def _session_header(result: CompiledConversation, index: int) -> str:
    session_id = Path(result.file).stem if result.file and result.file != "unknown" else f"session-{index}"
    stamps = [stamp for stamp in (parse_timestamp(record.timestamp) for record in result.records) if stamp]
    header = f"### Session {session_id}"
    if stamps:
        start, end = min(stamps), max(stamps)
        header += f" [{format_session_start(start)}]"
        if len(stamps) > 1:
            header += f" ({format_session_duration((end - start).total_seconds() * 1000)})"
    return header


def generate_report(results: list[CompiledConversation], pricing: Optional[PricingTable] = None) -> str:
    totals, models = aggregate_usage(results, pricing)
    model_label = ", ".join(model_display_name(model) for model in models) or "unknown (default pricing assumed)"

    lines = [
        "# Conversation History Analysis",
        "",
        "## Summary",
        f"- Total Conversations: {len(results)}",
        f"- Total Actions: {sum(result.action_count for result in results)}",
        f"- Model: {model_label}",
        f"- Input Tokens: {totals.input_tokens}",
        f"- Output Tokens: {totals.output_tokens}",
        (
            f"- Total Cost: {format_cost(totals.total_cost)} "
            f"(in: {format_cost(totals.input_cost)}, out: {format_cost(totals.output_cost)})"
        ),
        "",
        "## Tool Usage Distribution",
    ]
    for tool, count in sorted(tool_usage(results).items(), key=lambda item: (-item[1], item[0])):
        lines.append(f"- {tool}: {count} calls")
    lines += [
        "",
        "## Extracting Heredoc Commands",
        "",
        "Bash commands that use heredocs are shown as references. To extract the full command:",
        "",
        "```bash",
        "# Conversation files live in ~/.claude/projects/<project>/*.jsonl",
        _HEREDOC_JQ,
        "```",
        "",
        "Replace `TOOL_ID` with the ID shown in the heredoc reference.",
        "",
        "## Sessions",
        "",
    ]

    ordered = sorted(enumerate(results), key=lambda item: item[1].started_at, reverse=True)
    for index, result in ordered:
        lines.append(_session_header(result, index))
        lines.append(result.timeline)
        lines.append("")

    return "\n".join(lines) + "\n"


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


@dataclass
class StoredReport:
    path: Path
    created: datetime
    size: int

    @property
    def stamp(self) -> str:
        return self.path.stem.removeprefix("report-")


class ReportStore:
    """Reports for one project under ``<reports_dir>/<mapped project name>/``."""

    def __init__(self, reports_dir: Path, project_path: Path):
        self.directory = reports_dir / mapped_project_name(project_path)

    def save(self, report: str, now: Optional[datetime] = None) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"report-{report_timestamp(now)}.md"
        path.write_text(report, encoding="utf-8")
        logger.info("Report saved at %s", path)
        return path

    def list_reports(self) -> list[StoredReport]:
        if not self.directory.is_dir():
            return []
        reports: list[StoredReport] = []
        for path in self.directory.glob("report-*.md"):
            try:
                stats = path.stat()
            except OSError:
                continue
            reports.append(
                StoredReport(
                    path=path,
                    created=datetime.fromtimestamp(stats.st_mtime, timezone.utc),
                    size=stats.st_size,
                )
            )
        return sorted(reports, key=lambda report: (report.created, report.path.name), reverse=True)

    def latest(self) -> StoredReport | None:
        reports = self.list_reports()
        return reports[0] if reports else None
