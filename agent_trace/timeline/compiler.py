"""Compile one conversation's records into a compact, annotated timeline.

The compiler is a single forward fold over the records. The only state it
carries between records is a ``_FoldState``: the entries emitted so far, the
timestamp of the last emission, the next sequence number, a pending user
message and at most one pending run-length buffer (``FileRun`` or
``ReasoningRun``). A buffer never changes kind; anything that does not extend
it flushes it first.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from agent_trace.date_utils import elapsed_ms, format_duration
from agent_trace.models import (
    CompiledConversation,
    Conversation,
    ConversationRecord,
    TextBlock,
    ThinkingBlock,
    TimelineEntry,
    ToolResultBlock,
)
from agent_trace.parsers.conversations import build_tool_result_index
from agent_trace.pricing import PricingTable, estimate_cost, format_cost, get_pricing_table
from agent_trace.timeline.formatters import (
    FILE_OPERATION_KINDS,
    ToolKind,
    file_operation,
    format_tool,
    is_blocklisted,
    tool_label,
)

READ_SIZE_THRESHOLD = 3000  # bytes; smaller reads are not worth a line
IDLE_REASONING_GAP_MS = 60_000
USER_MESSAGE_LIMIT = 100


@dataclass
class FileRun:
    kind: ToolKind
    start: Optional[str]
    end: Optional[str]
    files: dict[str, list[str]] = field(default_factory=dict)
    total_bytes: int = 0
    cost: float = 0.0

    def add(self, filename: str, line_range: str) -> None:
        self.files.setdefault(filename, []).append(line_range)


@dataclass
class ReasoningRun:
    start: Optional[str]
    end: Optional[str]
    count: int = 1
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0


PendingAction = Union[FileRun, ReasoningRun]


@dataclass
class _FoldState:
    index: dict[str, ToolResultBlock]
    pricing: PricingTable
    entries: list[TimelineEntry] = field(default_factory=list)
    prev_timestamp: Optional[str] = None
    sequence: int = 0
    message_count: int = 0
    pending: Optional[PendingAction] = None
    user_message: Optional[str] = None

    def emit_action(self, text: str, tool: str) -> None:
        self.sequence += 1
        self.entries.append(TimelineEntry(kind="action", text=text, sequence=self.sequence, tool=tool))

    def emit_marker(self, kind: str, text: str) -> None:
        self.entries.append(TimelineEntry(kind=kind, text=text))

    def elapsed_label(self, at: Optional[str]) -> str:
        if not self.prev_timestamp or not at:
            return ""
        duration = format_duration(self.prev_timestamp, at)
        return f"+{duration}" if duration else ""


def truncate_user_message(text: str, max_length: int = USER_MESSAGE_LIMIT) -> str:
    single_line = " ".join((text or "").split())
    if len(single_line) <= max_length:
        return single_line
    return single_line[: max_length - 3] + "..."


def _join(parts: list[str]) -> str:
    return " ".join(part for part in parts if part)


def _token_meta(input_tokens: int, output_tokens: int, cost: float) -> str:
    return f"in={input_tokens}t out={output_tokens}t {format_cost(cost)}"


def _flush(state: _FoldState) -> None:
    pending = state.pending
    if pending is None:
        return

    elapsed = state.elapsed_label(pending.start)
    if isinstance(pending, ReasoningRun):
        count = f"{pending.count}x" if pending.count > 1 else ""
        meta = _join([elapsed, count, _token_meta(pending.input_tokens, pending.output_tokens, pending.cost)])
        state.emit_marker("reasoning", f"💭 [{meta}]")
    else:
        file_list = ", ".join(
            f"{filename}[{line_range}]"
            for filename, ranges in pending.files.items()
            for line_range in ranges
        )
        meta = _join([elapsed, f"{pending.total_bytes}b", format_cost(pending.cost)])
        state.emit_action(f"{pending.kind.value}: [{meta}] {file_list}", tool=pending.kind.value)

    state.prev_timestamp = pending.end or pending.start
    state.pending = None


def _step_user(state: _FoldState, record: ConversationRecord) -> None:
    for block in record.blocks:
        if isinstance(block, TextBlock) and block.text.strip():
            state.user_message = truncate_user_message(block.text)
            return


def _step_reasoning(state: _FoldState, record: ConversationRecord) -> None:
    usage = record.usage
    if not usage or not usage.billable:
        return

    gap = 0.0
    if state.prev_timestamp and record.timestamp:
        gap = elapsed_ms(state.prev_timestamp, record.timestamp) or 0.0
    if gap > IDLE_REASONING_GAP_MS:
        # The user walked away; this is not agent work.
        return

    cost = estimate_cost(usage.input_tokens, usage.output_tokens, record.model, state.pricing)
    pending = state.pending
    if isinstance(pending, ReasoningRun):
        pending.count += 1
        pending.input_tokens += usage.input_tokens
        pending.output_tokens += usage.output_tokens
        pending.cost += cost
        pending.end = record.timestamp
        return

    _flush(state)
    state.pending = ReasoningRun(
        start=record.timestamp,
        end=record.timestamp,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        cost=cost,
    )


def _step_tools(state: _FoldState, record: ConversationRecord) -> None:
    calls = record.tool_uses()
    if not calls:
        return

    usage = record.usage
    billable = bool(usage and usage.billable)
    cost = estimate_cost(usage.input_tokens, usage.output_tokens, record.model, state.pricing) if billable else 0.0

    if state.user_message:
        state.emit_marker("user_message", state.user_message)
        state.user_message = None

    inline_usage = len(calls) == 1
    surfaced = 0
    for call in calls:
        if is_blocklisted(call.name):
            continue

        result = state.index.get(call.id)
        kind = ToolKind.classify(call.name)

        if kind in FILE_OPERATION_KINDS:
            op = file_operation(call, result)
            if kind is ToolKind.READ and op.bytes < READ_SIZE_THRESHOLD:
                continue
            surfaced += 1
            pending = state.pending
            if isinstance(pending, FileRun) and pending.kind is kind:
                pending.add(op.filename, op.line_range)
                pending.total_bytes += op.bytes
                pending.cost += cost
                pending.end = record.timestamp
            else:
                _flush(state)
                run = FileRun(kind=kind, start=record.timestamp, end=record.timestamp, total_bytes=op.bytes, cost=cost)
                run.add(op.filename, op.line_range)
                state.pending = run
            continue

        _flush(state)
        meta = [state.elapsed_label(record.timestamp)]
        if inline_usage and billable:
            meta.append(_token_meta(usage.input_tokens, usage.output_tokens, cost))
        state.emit_action(format_tool(call, result, _join(meta)), tool=tool_label(call))
        state.prev_timestamp = record.timestamp
        surfaced += 1

    if not inline_usage and surfaced and billable:
        _flush(state)
        meta = _join([state.elapsed_label(record.timestamp), _token_meta(usage.input_tokens, usage.output_tokens, cost)])
        state.emit_marker("message_end", f"MessageEnd #{state.message_count}: [{meta}]")
        state.prev_timestamp = record.timestamp


def compile_timeline(
    records: Iterable[ConversationRecord],
    index: Optional[dict[str, ToolResultBlock]] = None,
    *,
    pricing: Optional[PricingTable] = None,
) -> list[TimelineEntry] | None:
    """Fold *records* into timeline entries.

    Returns None when nothing was emitted, so callers can tell an empty
    conversation apart from one whose entries happen to have empty text.
    """
    records = list(records)
    if not records:
        return None

    state = _FoldState(
        index=index if index is not None else build_tool_result_index(records),
        pricing=pricing or get_pricing_table(),
    )
    for record in records:
        if record.type == "user":
            _step_user(state, record)
            continue
        if record.type != "assistant" or not record.blocks:
            continue
        if isinstance(record.blocks[0], ThinkingBlock):
            _step_reasoning(state, record)
            continue
        state.message_count += 1
        _step_tools(state, record)

    _flush(state)
    return state.entries or None


def compile_conversation(conversation: Conversation, pricing: Optional[PricingTable] = None) -> CompiledConversation | None:
    """Worker unit: compile one parsed conversation, passing its records through."""
    entries = compile_timeline(conversation.records, pricing=pricing)
    if entries is None:
        return None
    return CompiledConversation(file=conversation.file_path, entries=entries, records=conversation.records)
