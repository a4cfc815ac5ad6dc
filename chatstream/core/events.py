"""Listener events. One attribute dict is shared by all events of a single request."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatstream.core.messages import ChatRequest
from chatstream.core.response import AccumulatedResponse


class ModelProvider(str, Enum):
    AZURE_OPEN_AI = "azure_open_ai"
    OPEN_AI = "open_ai"


@dataclass
class RequestStarted:
    """Fired once per request, before the transport is called."""

    request: ChatRequest
    provider: ModelProvider
    attributes: dict[Any, Any] = field(default_factory=dict)


@dataclass
class ResponseCompleted:
    """Fired after the last chunk, before the caller's completion callback."""

    response: AccumulatedResponse
    request: ChatRequest
    provider: ModelProvider
    attributes: dict[Any, Any] = field(default_factory=dict)


@dataclass
class ErrorRaised:
    """Fired on a transport-stage failure, before the caller's error callback."""

    error: BaseException
    request: ChatRequest
    provider: ModelProvider
    attributes: dict[Any, Any] = field(default_factory=dict)


ListenerEvent = RequestStarted | ResponseCompleted | ErrorRaised
