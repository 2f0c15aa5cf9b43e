"""Per-tool rendering policies for timeline action lines.

Every tool name maps to a ``ToolKind``; ``FORMATTERS`` holds one renderer per
kind, including ``ToolKind.UNKNOWN`` which flags tools that have no dedicated
renderer yet. Read/Write/Edit additionally expose a ``FileOperation`` summary
so the compiler can run-length compress consecutive calls.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from agent_trace.models import ToolResultBlock, ToolUseBlock

MCP_PREFIX = "mcp__"
NEEDS_FORMATTER = "(new tool - needs formatter)"

# Hidden from the timeline: navigation, bookkeeping, mode switches, shell monitoring.
BLOCKLISTED_TOOLS = frozenset(
    {
        "Glob",
        "Grep",
        "TodoWrite",
        "ExitPlanMode",
        "Skill",
        "SlashCommand",
        "BashOutput",
        "KillShell",
        "NotebookEdit",
    }
)

_HEREDOC_PATTERN = re.compile(r"(?<!<)<<(?!<)-?\s*['\"]?\w+['\"]?")


class ToolKind(str, Enum):
    READ = "Read"
    WRITE = "Write"
    EDIT = "Edit"
    BASH = "Bash"
    TASK = "Task"
    ASK_USER_QUESTION = "AskUserQuestion"
    WEB_FETCH = "WebFetch"
    WEB_SEARCH = "WebSearch"
    MCP = "mcp"
    UNKNOWN = "unknown"

    @classmethod
    def classify(cls, name: str) -> "ToolKind":
        if (name or "").startswith(MCP_PREFIX):
            return cls.MCP
        try:
            kind = cls(name)
        except ValueError:
            return cls.UNKNOWN
        if kind in (cls.MCP, cls.UNKNOWN):
            return cls.UNKNOWN
        return kind


FILE_OPERATION_KINDS = frozenset({ToolKind.READ, ToolKind.WRITE, ToolKind.EDIT})


def is_blocklisted(name: str) -> bool:
    if (name or "").startswith(MCP_PREFIX):
        return False
    return name in BLOCKLISTED_TOOLS


def tool_label(call: ToolUseBlock) -> str:
    kind = ToolKind.classify(call.name)
    if kind is ToolKind.MCP:
        return "MCP"
    if kind is ToolKind.UNKNOWN:
        return call.name or "Unknown"
    return kind.value


# ── sizes and text ─────────────────────────────────────────────────

def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def content_text(content: Any) -> str:
    """Flatten a tool_result payload: text blocks are joined, other structures serialized."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: list[str] = []
        for block in content:
            if isinstance(block, str):
                chunks.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                chunks.append(block["text"])
            else:
                return _dumps(content)
        return "\n".join(chunks)
    return _dumps(content)


def byte_size(value: Any) -> int:
    if value is None:
        return 0
    text = value if isinstance(value, str) else _dumps(value)
    return len(text.encode("utf-8"))


def _result_text(result: Optional[ToolResultBlock]) -> str:
    return content_text(result.content) if result else ""


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _filename(call: ToolUseBlock) -> str:
    filepath = str(call.input.get("file_path") or "unknown")
    return filepath.rsplit("/", 1)[-1] or filepath


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _meta(meta_parts: list[str]) -> str:
    return " ".join(part.strip() for part in meta_parts if part and part.strip())


def _line(label: str, meta_parts: list[str], body: str) -> str:
    meta = _meta(meta_parts)
    return f"{label}: [{meta}] {body}" if meta else f"{label}: {body}"


def _meta_first_line(label: str, meta_parts: list[str], body: str) -> str:
    """``[meta] Label: body``, the layout used for question, web and unknown tools."""
    meta = _meta(meta_parts)
    return f"[{meta}] {label}: {body}" if meta else f"{label}: {body}"


# ── file operations (run-length eligible) ──────────────────────────

@dataclass(frozen=True)
class FileOperation:
    filename: str
    bytes: int
    line_range: str


def read_operation(call: ToolUseBlock, result: Optional[ToolResultBlock]) -> FileOperation:
    text = _result_text(result)
    lines = len(text.split("\n"))
    offset = _coerce_int(call.input.get("offset"), 0)
    limit = _coerce_int(call.input.get("limit"), 0)
    end_line = offset + limit if limit else offset + lines
    return FileOperation(_filename(call), byte_size(text), f"L{offset + 1}-L{end_line}")


def write_operation(call: ToolUseBlock, result: Optional[ToolResultBlock] = None) -> FileOperation:
    text = _as_str(call.input.get("content"))
    lines = len(text.split("\n"))
    return FileOperation(_filename(call), byte_size(text), f"L1-L{lines}")


def edit_operation(call: ToolUseBlock, result: Optional[ToolResultBlock] = None) -> FileOperation:
    # The range spans the replacement text itself, not where it landed in the file.
    text = _as_str(call.input.get("new_string"))
    lines = len(text.split("\n"))
    return FileOperation(_filename(call), byte_size(text), f"L1-L{lines}")


FILE_OPERATIONS: dict[ToolKind, Callable[[ToolUseBlock, Optional[ToolResultBlock]], FileOperation]] = {
    ToolKind.READ: read_operation,
    ToolKind.WRITE: write_operation,
    ToolKind.EDIT: edit_operation,
}


def file_operation(call: ToolUseBlock, result: Optional[ToolResultBlock]) -> FileOperation:
    return FILE_OPERATIONS[ToolKind.classify(call.name)](call, result)


# ── single-line renderers ──────────────────────────────────────────

def format_file_operation(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    op = file_operation(call, result)
    return _line(call.name, [metadata, f"{op.bytes}b"], f"{op.filename}[{op.line_range}]")


def has_heredoc(command: str) -> bool:
    return bool(_HEREDOC_PATTERN.search(command or ""))


def format_bash(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    command = _as_str(call.input.get("command"))
    parts = [metadata]
    exit_code = result.exit_code if result and result.exit_code is not None else 0
    if exit_code != 0:
        parts.append(f"exit={exit_code}")
    if command:
        parts.append(f"cmd={byte_size(command)}b")
    output = _result_text(result)
    if output:
        parts.append(f"out={byte_size(output)}b")

    if has_heredoc(command):
        return _line("Bash", parts, f'<heredoc - see tool_use_id="{call.id}">')
    return _line("Bash", parts, command)


def format_task(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    subagent = _as_str(call.input.get("subagent_type")) or "unknown"
    description = _as_str(call.input.get("description"))
    body = f'{subagent} ("{description}")' if description else subagent
    return _line("Task", [metadata], body)


def format_ask_user_question(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    questions = call.input.get("questions")
    first = questions[0] if isinstance(questions, list) and questions else {}
    question = _as_str(first.get("question")) if isinstance(first, dict) else ""
    return _meta_first_line("Asked", [metadata], f'"{_truncate(question or "User question", 60)}"')


def format_web_fetch(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    url = _as_str(call.input.get("url")) or "unknown"
    parts = [metadata]
    in_bytes = byte_size(_as_str(call.input.get("prompt")))
    out_bytes = byte_size(_result_text(result))
    if in_bytes > 0:
        parts.append(f"in={in_bytes}b")
    if out_bytes > 0:
        parts.append(f"out={out_bytes}b")
    return _meta_first_line("WebFetch", parts, _truncate(url, 50))


def format_web_search(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    query = _as_str(call.input.get("query")) or "unknown"
    parts = [metadata]
    out_bytes = byte_size(_result_text(result))
    if out_bytes > 0:
        parts.append(f"out={out_bytes}b")
    return _meta_first_line("WebSearch", parts, f'"{_truncate(query, 50)}"')


def mcp_display_name(name: str) -> str:
    stripped = name[len(MCP_PREFIX):] if name.startswith(MCP_PREFIX) else name
    return stripped.replace("__", ".")


def _size_parts(call: ToolUseBlock, result: Optional[ToolResultBlock]) -> list[str]:
    parts: list[str] = []
    in_bytes = byte_size(_dumps(call.input))
    out_bytes = byte_size(_result_text(result))
    if in_bytes > 0:
        parts.append(f"in={in_bytes}b")
    if out_bytes > 0:
        parts.append(f"out={out_bytes}b")
    return parts


def format_mcp(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    params = ", ".join(
        f"{key}={value}" if isinstance(value, str) else f"{key}={_dumps(value)}"
        for key, value in call.input.items()
    )
    return _line("MCP", [metadata, *_size_parts(call, result)], f"{mcp_display_name(call.name)}({params})")


def format_unknown(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str) -> str:
    return _meta_first_line(call.name or "Unknown", [metadata, *_size_parts(call, result)], NEEDS_FORMATTER)


Formatter = Callable[[ToolUseBlock, Optional[ToolResultBlock], str], str]

FORMATTERS: dict[ToolKind, Formatter] = {
    ToolKind.READ: format_file_operation,
    ToolKind.WRITE: format_file_operation,
    ToolKind.EDIT: format_file_operation,
    ToolKind.BASH: format_bash,
    ToolKind.TASK: format_task,
    ToolKind.ASK_USER_QUESTION: format_ask_user_question,
    ToolKind.WEB_FETCH: format_web_fetch,
    ToolKind.WEB_SEARCH: format_web_search,
    ToolKind.MCP: format_mcp,
    ToolKind.UNKNOWN: format_unknown,
}


def format_tool(call: ToolUseBlock, result: Optional[ToolResultBlock], metadata: str = "") -> str:
    return FORMATTERS[ToolKind.classify(call.name)](call, result, metadata)
