"""Listener dispatch: notify observers of request lifecycle events, isolating their failures."""

from __future__ import annotations

import logging
import time
from typing import Iterable

from chatstream.core.events import ErrorRaised, ListenerEvent, RequestStarted, ResponseCompleted

logger = logging.getLogger(__name__)


class ChatModelListener:
    """Observer of streaming requests. Override the hooks you need; the defaults do nothing.

    Listeners cannot influence control flow: anything they raise is logged and dropped.
    Use ``event.attributes`` to pass state from ``on_request`` to ``on_response``/``on_error``.
    """

    def on_request(self, event: RequestStarted) -> None:
        pass

    def on_response(self, event: ResponseCompleted) -> None:
        pass

    def on_error(self, event: ErrorRaised) -> None:
        pass


class ListenerDispatcher:
    """Fan-out to listeners in registration order, one try/except per listener."""

    def __init__(self, listeners: Iterable[ChatModelListener] | None = None) -> None:
        self._listeners: list[ChatModelListener] = list(listeners or [])

    @property
    def listeners(self) -> list[ChatModelListener]:
        return list(self._listeners)

    def notify(self, event: ListenerEvent) -> None:
        for listener in self._listeners:
            try:
                if isinstance(event, RequestStarted):
                    listener.on_request(event)
                elif isinstance(event, ResponseCompleted):
                    listener.on_response(event)
                elif isinstance(event, ErrorRaised):
                    listener.on_error(event)
                else:
                    raise TypeError(f"unknown listener event: {type(event).__name__}")
            except Exception as e:
                logger.warning(
                    "Exception while calling model listener: %s",
                    e,
                    exc_info=True,
                    extra={"listener": type(listener).__name__, "event": type(event).__name__},
                )


START_TIME_ATTRIBUTE = "chatstream.start_time"


class LoggingChatModelListener(ChatModelListener):
    """Logs each request, its latency and token usage. Keeps its start time in the attribute bag."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def on_request(self, event: RequestStarted) -> None:
        event.attributes[START_TIME_ATTRIBUTE] = time.monotonic()
        logger.log(
            self._level,
            "chat request started",
            extra={
                "provider": event.provider.value,
                "messages": len(event.request.messages),
                "tools": len(event.request.tool_specifications),
            },
        )

    def on_response(self, event: ResponseCompleted) -> None:
        usage = event.response.usage
        logger.log(
            self._level,
            "chat response completed",
            extra={
                "provider": event.provider.value,
                "response_id": event.response.id,
                "finish_reason": event.response.finish_reason.value if event.response.finish_reason else None,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "elapsed_ms": self._elapsed_ms(event.attributes),
            },
        )

    def on_error(self, event: ErrorRaised) -> None:
        logger.log(
            max(self._level, logging.WARNING),
            "chat request failed: %s",
            event.error,
            extra={
                "provider": event.provider.value,
                "error_type": type(event.error).__name__,
                "elapsed_ms": self._elapsed_ms(event.attributes),
            },
        )

    @staticmethod
    def _elapsed_ms(attributes: dict) -> int | None:
        started = attributes.get(START_TIME_ATTRIBUTE)
        if started is None:
            return None
        return int((time.monotonic() - started) * 1000)
