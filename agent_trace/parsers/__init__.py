"""Transcript parsing helpers."""

from agent_trace.parsers.conversations import (
    build_tool_result_index,
    load_conversation,
    parse_records,
)

__all__ = [
    "build_tool_result_index",
    "load_conversation",
    "parse_records",
]
