"""Parse JSONL transcripts into conversation records."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from agent_trace.models import Conversation, ConversationRecord, ToolResultBlock

logger = logging.getLogger("ato.parser")


def parse_records(lines: Iterable[str]) -> list[ConversationRecord]:
    """Parse JSONL lines, skipping blank, malformed or non-object lines individually."""
    records: list[ConversationRecord] = []
    for line_no, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON on line %d", line_no)
            continue
        if not isinstance(raw, dict):
            continue
        try:
            records.append(ConversationRecord.model_validate(raw))
        except ValidationError as exc:
            logger.debug("Skipping invalid record on line %d: %s", line_no, exc.error_count())
    return records


def load_conversation(path: Path) -> Conversation | None:
    """Read one transcript file; unreadable or empty files yield None."""
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Failed to read %s: %s", path, exc)
        return None

    records = parse_records(text.splitlines())
    if not records:
        return None
    return Conversation(file_path=str(path), records=records)


def build_tool_result_index(records: Iterable[ConversationRecord]) -> dict[str, ToolResultBlock]:
    """Map tool_use ids to the tool_result blocks that answer them (last one wins)."""
    index: dict[str, ToolResultBlock] = {}
    for record in records:
        if record.type != "user":
            continue
        for block in record.blocks:
            if isinstance(block, ToolResultBlock):
                index[block.tool_use_id] = block
    return index
