"""Chat request model. All request types are frozen Pydantic models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolExecutionRequest(BaseModel):
    """A tool call emitted by the model. Arguments stay as the raw JSON string."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    arguments: str = ""


class ChatMessage(BaseModel):
    """One role-tagged message of a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: Optional[str] = None
    name: Optional[str] = Field(default=None, description="Participant name (user messages)")
    tool_call_id: Optional[str] = Field(default=None, description="Id of the call a tool result answers")
    tool_execution_requests: tuple[ToolExecutionRequest, ...] = ()

    @classmethod
    def system(cls, text: str) -> "ChatMessage":
        return cls(role=Role.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str, name: str | None = None) -> "ChatMessage":
        return cls(role=Role.USER, content=text, name=name)

    @classmethod
    def assistant(
        cls,
        text: str | None = None,
        tool_execution_requests: tuple[ToolExecutionRequest, ...] | list[ToolExecutionRequest] = (),
    ) -> "ChatMessage":
        return cls(
            role=Role.ASSISTANT,
            content=text,
            tool_execution_requests=tuple(tool_execution_requests),
        )

    @classmethod
    def tool_result(cls, tool_call_id: str, text: str, name: str | None = None) -> "ChatMessage":
        return cls(role=Role.TOOL, content=text, tool_call_id=tool_call_id, name=name)


class ToolSpecification(BaseModel):
    """Description of a tool the model may call instead of answering in text."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict, description="JSON schema of the arguments")


class ToolChoice(str, Enum):
    AUTO = "auto"
    REQUIRED = "required"


class ResponseFormatType(str, Enum):
    TEXT = "text"
    JSON = "json"


class ResponseFormat(BaseModel):
    """Requested output format. A JSON format may carry a schema."""

    model_config = ConfigDict(frozen=True)

    type: ResponseFormatType = ResponseFormatType.TEXT
    json_schema: Optional[dict[str, Any]] = None
    name: Optional[str] = Field(default=None, description="Schema name sent with json_schema")

    @classmethod
    def text_format(cls) -> "ResponseFormat":
        return cls(type=ResponseFormatType.TEXT)

    @classmethod
    def json_format(cls, json_schema: dict[str, Any] | None = None, name: str | None = None) -> "ResponseFormat":
        return cls(type=ResponseFormatType.JSON, json_schema=json_schema, name=name)


class ChatRequest(BaseModel):
    """A chat request: messages, optional tools and response format, sampling parameters.

    Sampling parameters left as None fall back to the client's configured defaults.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    messages: tuple[ChatMessage, ...]
    tool_specifications: tuple[ToolSpecification, ...] = ()
    tool_choice: Optional[ToolChoice] = None
    response_format: Optional[ResponseFormat] = None
    model_name: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    logit_bias: Optional[dict[str, int]] = None
    stop_sequences: Optional[tuple[str, ...]] = None
    seed: Optional[int] = None
    max_output_tokens: Optional[int] = None
    user: Optional[str] = None
