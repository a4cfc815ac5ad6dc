"""Token count estimation for requests and accumulated responses."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Protocol, runtime_checkable

import tiktoken

from chatstream.core.messages import ChatMessage, ToolExecutionRequest

logger = logging.getLogger(__name__)

# Chat-completions framing: every message costs a few tokens on top of its content,
# and the reply is primed with <|start|>assistant<|message|>.
TOKENS_PER_MESSAGE = 3
TOKENS_PER_NAME = 1
TOKENS_PER_REPLY = 3
DEFAULT_ENCODING = "cl100k_base"


@runtime_checkable
class TokenCountEstimator(Protocol):
    """Estimates token counts. Used once per request for input and once per response for output."""

    def estimate_token_count_in_text(self, text: str) -> int: ...

    def estimate_token_count_in_messages(self, messages: Iterable[ChatMessage]) -> int: ...

    def estimate_token_count_in_tool_execution_requests(
        self, requests: Iterable[ToolExecutionRequest]
    ) -> int: ...


class TiktokenCountEstimator:
    """tiktoken-backed estimator. The encoding is resolved lazily on first use."""

    def __init__(self, model_name: str = "gpt-3.5-turbo") -> None:
        self._model_name = model_name
        self._encoding: tiktoken.Encoding | None = None
        self._lock = threading.Lock()

    @property
    def encoding(self) -> tiktoken.Encoding:
        with self._lock:
            if self._encoding is None:
                try:
                    self._encoding = tiktoken.encoding_for_model(self._model_name)
                except KeyError:
                    logger.debug(
                        "no tiktoken encoding for model, using %s",
                        DEFAULT_ENCODING,
                        extra={"model_name": self._model_name},
                    )
                    self._encoding = tiktoken.get_encoding(DEFAULT_ENCODING)
            return self._encoding

    def estimate_token_count_in_text(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text))

    def estimate_token_count_in_messages(self, messages: Iterable[ChatMessage]) -> int:
        total = 0
        for message in messages:
            total += TOKENS_PER_MESSAGE
            total += self.estimate_token_count_in_text(message.role.value)
            total += self.estimate_token_count_in_text(message.content or "")
            if message.name:
                total += TOKENS_PER_NAME + self.estimate_token_count_in_text(message.name)
            total += self.estimate_token_count_in_tool_execution_requests(message.tool_execution_requests)
        return total + TOKENS_PER_REPLY

    def estimate_token_count_in_tool_execution_requests(
        self, requests: Iterable[ToolExecutionRequest]
    ) -> int:
        total = 0
        for request in requests:
            total += self.estimate_token_count_in_text(request.name)
            total += self.estimate_token_count_in_text(request.arguments)
        return total
