"""Streaming chat-completion orchestration: one request, one stream, one terminal callback."""

from chatstream.core.accumulator import ResponseAccumulator
from chatstream.core.errors import (
    ChatStreamError,
    ConfigurationError,
    StreamStateError,
    TransportError,
    UnsupportedCapabilityError,
    ValidationError,
)
from chatstream.core.events import ErrorRaised, ModelProvider, RequestStarted, ResponseCompleted
from chatstream.core.listeners import ChatModelListener, ListenerDispatcher, LoggingChatModelListener
from chatstream.core.messages import (
    ChatMessage,
    ChatRequest,
    ResponseFormat,
    ResponseFormatType,
    Role,
    ToolChoice,
    ToolExecutionRequest,
    ToolSpecification,
)
from chatstream.core.orchestrator import StreamingChatModel
from chatstream.core.response import AccumulatedResponse, FinishReason, PartialChunk, TokenUsage, ToolCallDelta
from chatstream.core.tokens import TiktokenCountEstimator, TokenCountEstimator

__all__ = [
    "AccumulatedResponse",
    "ChatMessage",
    "ChatModelListener",
    "ChatRequest",
    "ChatStreamError",
    "ConfigurationError",
    "ErrorRaised",
    "FinishReason",
    "ListenerDispatcher",
    "LoggingChatModelListener",
    "ModelProvider",
    "PartialChunk",
    "RequestStarted",
    "ResponseAccumulator",
    "ResponseCompleted",
    "ResponseFormat",
    "ResponseFormatType",
    "Role",
    "StreamStateError",
    "StreamingChatModel",
    "TiktokenCountEstimator",
    "TokenCountEstimator",
    "TokenUsage",
    "ToolCallDelta",
    "ToolChoice",
    "ToolExecutionRequest",
    "ToolSpecification",
    "TransportError",
    "UnsupportedCapabilityError",
    "ValidationError",
]
