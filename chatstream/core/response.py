"""Streamed chunks and the final accumulated response."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chatstream.core.messages import ChatMessage, ToolExecutionRequest


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_EXECUTION = "tool_execution"
    CONTENT_FILTER = "content_filter"
    OTHER = "other"

    @classmethod
    def from_wire(cls, value: str | None) -> Optional["FinishReason"]:
        """Map a vendor finish reason (chat-completions vocabulary) to FinishReason."""
        if not value:
            return None
        return _WIRE_FINISH_REASONS.get(value.lower(), cls.OTHER)


_WIRE_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_EXECUTION,
    "function_call": FinishReason.TOOL_EXECUTION,
    "tool_execution": FinishReason.TOOL_EXECUTION,
    "content_filter": FinishReason.CONTENT_FILTER,
}


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @model_validator(mode="before")
    @classmethod
    def _fill_total(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("total_tokens"):
            data = dict(data)
            data["total_tokens"] = int(data.get("input_tokens") or 0) + int(data.get("output_tokens") or 0)
        return data

    def add(self, other: "TokenUsage | None") -> "TokenUsage":
        if other is None:
            return self
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ToolCallDelta(BaseModel):
    """Fragment of a streamed tool call. Fragments sharing an index belong to one call."""

    model_config = ConfigDict(frozen=True)

    index: int = 0
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


class PartialChunk(BaseModel):
    """One increment of a streamed completion. Every field is optional."""

    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    id: Optional[str] = None
    model: Optional[str] = None
    finish_reason: Optional[FinishReason] = None
    usage: Optional[TokenUsage] = Field(default=None, description="Vendor usage snapshot, usually on the last chunk")
    tool_calls: tuple[ToolCallDelta, ...] = ()


class AccumulatedResponse(BaseModel):
    """Final response built from all chunks of one stream."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    model: Optional[str] = None
    content: str = ""
    tool_execution_requests: tuple[ToolExecutionRequest, ...] = ()
    finish_reason: Optional[FinishReason] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)

    def has_tool_execution_requests(self) -> bool:
        return bool(self.tool_execution_requests)

    def ai_message(self) -> ChatMessage:
        """Assistant message to append to the conversation for the next turn."""
        return ChatMessage.assistant(
            self.content or None,
            tool_execution_requests=self.tool_execution_requests,
        )
