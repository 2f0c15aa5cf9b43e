"""Pydantic models for transcript records and compiled timelines."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag, field_validator

from agent_trace.date_utils import parse_timestamp

# ── Transcript records ─────────────────────────────────────────────

_BLOCK_TYPES = {"text", "tool_use", "tool_result", "thinking"}


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)

    @field_validator("input", mode="before")
    @classmethod
    def _coerce_input(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: Any = None
    exit_code: Optional[int] = None
    is_error: bool = False


class ThinkingBlock(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str = ""


class OtherBlock(BaseModel):
    """Any block type the compiler does not look at (images, redacted thinking, ...)."""

    type: str = ""


def _block_tag(value: Any) -> str:
    if isinstance(value, dict):
        tag = value.get("type")
    else:
        tag = getattr(value, "type", None)
    return tag if tag in _BLOCK_TYPES else "other"


ContentBlock = Annotated[
    Union[
        Annotated[TextBlock, Tag("text")],
        Annotated[ToolUseBlock, Tag("tool_use")],
        Annotated[ToolResultBlock, Tag("tool_result")],
        Annotated[ThinkingBlock, Tag("thinking")],
        Annotated[OtherBlock, Tag("other")],
    ],
    Discriminator(_block_tag),
]


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @field_validator("input_tokens", "output_tokens", mode="before")
    @classmethod
    def _coerce_tokens(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def billable(self) -> bool:
        return self.input_tokens > 0 and self.output_tokens > 0


class Message(BaseModel):
    role: str = ""
    model: Optional[str] = None
    usage: Optional[Usage] = None
    content: list[ContentBlock] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def _normalize_content(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [{"type": "text", "text": value}]
        if not isinstance(value, list):
            return []
        blocks: list[Any] = []
        for item in value:
            if isinstance(item, str):
                blocks.append({"type": "text", "text": item})
            elif isinstance(item, (dict, BaseModel)):
                blocks.append(item)
        return blocks


class ConversationRecord(BaseModel):
    type: str = ""
    timestamp: Optional[str] = None
    message: Optional[Message] = None

    @property
    def blocks(self) -> list[Any]:
        return self.message.content if self.message else []

    @property
    def usage(self) -> Optional[Usage]:
        return self.message.usage if self.message else None

    @property
    def model(self) -> Optional[str]:
        return self.message.model if self.message else None

    def tool_uses(self) -> list[ToolUseBlock]:
        return [block for block in self.blocks if isinstance(block, ToolUseBlock)]


class Conversation(BaseModel):
    file_path: str = "unknown"
    records: list[ConversationRecord] = Field(default_factory=list)


# ── Compiled output ────────────────────────────────────────────────

class TimelineEntry(BaseModel):
    kind: Literal["action", "message_end", "reasoning", "user_message"]
    text: str
    sequence: Optional[int] = None  # set for kind == "action" only
    tool: str = ""

    def render(self) -> str:
        if self.kind == "action":
            return f"{self.sequence}. {self.text}"
        if self.kind == "user_message":
            return f"\nUser: {self.text}\n"
        return self.text


class CompiledConversation(BaseModel):
    file: str = "unknown"
    entries: list[TimelineEntry] = Field(default_factory=list)
    records: list[ConversationRecord] = Field(default_factory=list)

    @property
    def timeline(self) -> str:
        return "\n".join(entry.render() for entry in self.entries)

    @property
    def action_count(self) -> int:
        return sum(1 for entry in self.entries if entry.kind == "action")

    @property
    def started_at(self) -> float:
        """Earliest record timestamp as epoch seconds (0.0 when none parse)."""
        stamps = [parse_timestamp(record.timestamp) for record in self.records]
        epochs = [stamp.timestamp() for stamp in stamps if stamp]
        return min(epochs) if epochs else 0.0
