"""Response accumulator: folds partial chunks, in arrival order, into one final response."""

from __future__ import annotations

import threading
from typing import Optional

from chatstream.core.errors import StreamStateError
from chatstream.core.messages import ToolExecutionRequest
from chatstream.core.response import (
    AccumulatedResponse,
    FinishReason,
    PartialChunk,
    TokenUsage,
    ToolCallDelta,
)
from chatstream.core.tokens import TokenCountEstimator


class _ToolCallBuilder:
    """Collects the fragments of one tool call: id and name arrive once, arguments in pieces."""

    def __init__(self) -> None:
        self.id: Optional[str] = None
        self.name: Optional[str] = None
        self._arguments: list[str] = []

    def feed(self, delta: ToolCallDelta) -> None:
        if delta.id:
            self.id = delta.id
        if delta.name:
            self.name = delta.name
        if delta.arguments:
            self._arguments.append(delta.arguments)

    def build(self) -> ToolExecutionRequest | None:
        if not self.name:
            return None
        return ToolExecutionRequest(id=self.id, name=self.name, arguments="".join(self._arguments))


class ResponseAccumulator:
    """Stateful aggregator for one stream.

    ``append`` may be called from a transport thread; ``finalize`` is called exactly
    once after the last chunk, possibly from another thread. A lock guards all state.
    """

    def __init__(self, token_estimator: TokenCountEstimator | None = None) -> None:
        self._token_estimator = token_estimator
        self._lock = threading.Lock()
        self._content: list[str] = []
        self._tool_calls: dict[int, _ToolCallBuilder] = {}
        self._finish_reason: Optional[FinishReason] = None
        self._id: Optional[str] = None
        self._model: Optional[str] = None
        self._usage: Optional[TokenUsage] = None
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def append(self, chunk: PartialChunk) -> None:
        with self._lock:
            if self._finalized:
                raise StreamStateError("chunk appended after the response was finalized")
            if chunk.text:
                self._content.append(chunk.text)
            for delta in chunk.tool_calls:
                self._tool_calls.setdefault(delta.index, _ToolCallBuilder()).feed(delta)
            if chunk.finish_reason is not None:
                self._finish_reason = chunk.finish_reason
            if chunk.id:
                self._id = chunk.id
            if chunk.model:
                self._model = chunk.model
            if chunk.usage is not None:
                self._usage = chunk.usage

    def finalize(self, input_token_count: int = 0) -> AccumulatedResponse:
        with self._lock:
            if self._finalized:
                raise StreamStateError("response already finalized")
            self._finalized = True

            content = "".join(self._content)
            requests = tuple(
                request
                for request in (self._tool_calls[index].build() for index in sorted(self._tool_calls))
                if request is not None
            )
            finish_reason = self._finish_reason
            if requests and finish_reason is None:
                finish_reason = FinishReason.TOOL_EXECUTION

            if self._usage is not None and self._usage.output_tokens:
                output_tokens = self._usage.output_tokens
            else:
                output_tokens = self._estimate_output_tokens(content, requests)

            return AccumulatedResponse(
                id=self._id,
                model=self._model,
                content=content,
                tool_execution_requests=requests,
                finish_reason=finish_reason,
                usage=TokenUsage(input_tokens=input_token_count, output_tokens=output_tokens),
            )

    def _estimate_output_tokens(self, content: str, requests: tuple[ToolExecutionRequest, ...]) -> int:
        if self._token_estimator is None:
            return 0
        if requests:
            return self._token_estimator.estimate_token_count_in_tool_execution_requests(requests)
        return self._token_estimator.estimate_token_count_in_text(content)
