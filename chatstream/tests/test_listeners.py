"""Tests for ListenerDispatcher isolation and LoggingChatModelListener."""

from __future__ import annotations

import logging

from chatstream.core.events import ErrorRaised, ModelProvider, RequestStarted, ResponseCompleted
from chatstream.core.listeners import (
    START_TIME_ATTRIBUTE,
    ChatModelListener,
    ListenerDispatcher,
    LoggingChatModelListener,
)
from chatstream.core.messages import ChatMessage, ChatRequest
from chatstream.core.response import AccumulatedResponse, FinishReason, TokenUsage

from conftest import RecordingListener


def _request() -> ChatRequest:
    return ChatRequest(messages=[ChatMessage.user("hi")])


class _Exploding(ChatModelListener):
    def on_request(self, event):
        raise RuntimeError("listener bug")

    def on_response(self, event):
        raise RuntimeError("listener bug")

    def on_error(self, event):
        raise RuntimeError("listener bug")


def test_notify_in_registration_order():
    log: list = []
    dispatcher = ListenerDispatcher([RecordingListener(log, "a"), RecordingListener(log, "b")])
    dispatcher.notify(RequestStarted(request=_request(), provider=ModelProvider.AZURE_OPEN_AI))
    assert log == [("a", "request"), ("b", "request")]


def test_failing_listener_does_not_stop_the_rest(caplog):
    log: list = []
    dispatcher = ListenerDispatcher([_Exploding(), RecordingListener(log, "after")])
    with caplog.at_level(logging.WARNING, logger="chatstream.core.listeners"):
        dispatcher.notify(RequestStarted(request=_request(), provider=ModelProvider.AZURE_OPEN_AI))
        dispatcher.notify(
            ErrorRaised(error=ValueError("x"), request=_request(), provider=ModelProvider.AZURE_OPEN_AI)
        )
    assert log == [("after", "request"), ("after", "error")]
    assert sum("Exception while calling model listener" in r.getMessage() for r in caplog.records) == 2


def test_default_listener_hooks_are_noops():
    dispatcher = ListenerDispatcher([ChatModelListener()])
    dispatcher.notify(RequestStarted(request=_request(), provider=ModelProvider.OPEN_AI))


def test_no_listeners():
    ListenerDispatcher().notify(RequestStarted(request=_request(), provider=ModelProvider.OPEN_AI))
    assert ListenerDispatcher(None).listeners == []


def test_listeners_copy_is_returned():
    listener = RecordingListener()
    dispatcher = ListenerDispatcher([listener])
    dispatcher.listeners.clear()
    assert dispatcher.listeners == [listener]


def test_attribute_bag_carries_state_between_events():
    attributes: dict = {}
    request = _request()

    class _Stamp(ChatModelListener):
        seen = None

        def on_request(self, event):
            event.attributes["trace"] = "t-1"

        def on_response(self, event):
            _Stamp.seen = event.attributes.get("trace")

    dispatcher = ListenerDispatcher([_Stamp()])
    dispatcher.notify(RequestStarted(request=request, provider=ModelProvider.OPEN_AI, attributes=attributes))
    dispatcher.notify(
        ResponseCompleted(
            response=AccumulatedResponse(content="ok"),
            request=request,
            provider=ModelProvider.OPEN_AI,
            attributes=attributes,
        )
    )
    assert _Stamp.seen == "t-1"


def test_logging_listener_records_elapsed_and_usage(caplog):
    attributes: dict = {}
    listener = LoggingChatModelListener()
    request = _request()
    with caplog.at_level(logging.INFO, logger="chatstream.core.listeners"):
        listener.on_request(RequestStarted(request=request, provider=ModelProvider.AZURE_OPEN_AI, attributes=attributes))
        assert START_TIME_ATTRIBUTE in attributes
        listener.on_response(
            ResponseCompleted(
                response=AccumulatedResponse(
                    id="r1",
                    content="hello",
                    finish_reason=FinishReason.STOP,
                    usage=TokenUsage(input_tokens=2, output_tokens=1),
                ),
                request=request,
                provider=ModelProvider.AZURE_OPEN_AI,
                attributes=attributes,
            )
        )
    completed = [r for r in caplog.records if r.getMessage() == "chat response completed"]
    assert len(completed) == 1
    assert completed[0].output_tokens == 1
    assert completed[0].finish_reason == "stop"
    assert completed[0].elapsed_ms >= 0


def test_logging_listener_error_logged_as_warning(caplog):
    listener = LoggingChatModelListener()
    with caplog.at_level(logging.INFO, logger="chatstream.core.listeners"):
        listener.on_error(
            ErrorRaised(error=TimeoutError("slow"), request=_request(), provider=ModelProvider.OPEN_AI)
        )
    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.error_type == "TimeoutError"
    assert record.elapsed_ms is None
