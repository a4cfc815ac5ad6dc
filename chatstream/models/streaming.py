"""Transport contract for streamed chat completions.

Two variants, chosen when the client is built:

- pull: ``SyncChatTransport.open_sync_stream`` returns an iterable of PartialChunk;
  the calling thread blocks while it is consumed.
- push: ``AsyncChatTransport.open_async_stream`` returns a PushSource; chunks are
  delivered to ``on_next`` on a transport-managed thread, followed by exactly one
  of ``on_complete`` or ``on_error``.

Both deliver the vendor chunk format already mapped to PartialChunk (see
chatstream.models.wire for the chat-completions mapping).
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from chatstream.core.messages import ChatMessage, ResponseFormat, ToolSpecification
from chatstream.core.response import PartialChunk


class ChatCompletionOptions(BaseModel):
    """Provider-agnostic request options handed to a transport."""

    model_config = ConfigDict(frozen=True)

    messages: tuple[ChatMessage, ...]
    model: str
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    logit_bias: Optional[dict[str, int]] = None
    user: Optional[str] = None
    stop: Optional[tuple[str, ...]] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    seed: Optional[int] = None
    tools: Optional[tuple[ToolSpecification, ...]] = None
    tool_choice: Optional[ToolSpecification] = Field(
        default=None, description="Tool the model is forced to call; None lets the model decide"
    )
    response_format: Optional[ResponseFormat] = None
    strict_json_schema: bool = False


OnNext = Callable[[PartialChunk], None]
OnError = Callable[[BaseException], None]
OnComplete = Callable[[], None]


@runtime_checkable
class PushSource(Protocol):
    """A stream that pushes chunks to subscribers instead of being iterated."""

    def subscribe(self, on_next: OnNext, on_error: OnError, on_complete: OnComplete) -> Any:
        """Start delivery and return immediately."""
        ...


@runtime_checkable
class SyncChatTransport(Protocol):
    def open_sync_stream(self, deployment_name: str, options: ChatCompletionOptions) -> Iterable[PartialChunk]:
        """Issue the request; iterate the result to pull chunks in arrival order."""
        ...


@runtime_checkable
class AsyncChatTransport(Protocol):
    def open_async_stream(self, deployment_name: str, options: ChatCompletionOptions) -> PushSource:
        """Prepare the request; nothing is sent until the source is subscribed."""
        ...
