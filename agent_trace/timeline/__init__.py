"""Timeline compilation."""

from agent_trace.timeline.compiler import compile_conversation, compile_timeline
from agent_trace.timeline.formatters import FORMATTERS, ToolKind, format_tool

__all__ = [
    "FORMATTERS",
    "ToolKind",
    "compile_conversation",
    "compile_timeline",
    "format_tool",
]
