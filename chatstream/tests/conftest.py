"""Pytest fixtures and in-memory transports."""

from __future__ import annotations

import threading
from typing import Iterable

import pytest

from chatstream.core.listeners import ChatModelListener
from chatstream.core.response import PartialChunk


@pytest.fixture(autouse=True)
def env_cleanup(monkeypatch):
    """Avoid picking up real credentials in tests."""
    for key in (
        "AZURE_OPENAI_API_KEY",
        "OPENAI_API_KEY",
        "CHATSTREAM_ENDPOINT",
        "CHATSTREAM_DEPLOYMENT",
        "CHATSTREAM_USE_ASYNC",
        "CHATSTREAM_LOG_LEVEL",
        "CHATSTREAM_ENV_PREFIX",
    ):
        monkeypatch.delenv(key, raising=False)
    yield


class WordCountEstimator:
    """Deterministic estimator: one token per whitespace-separated word."""

    def __init__(self) -> None:
        self.message_calls = 0

    def estimate_token_count_in_text(self, text: str) -> int:
        return len(text.split())

    def estimate_token_count_in_messages(self, messages) -> int:
        self.message_calls += 1
        return sum(len((m.content or "").split()) for m in messages)

    def estimate_token_count_in_tool_execution_requests(self, requests) -> int:
        return sum(len(r.name.split()) + len(r.arguments.split()) for r in requests)


class FakeSyncTransport:
    """Yields the given chunks; raises ``error`` after ``fail_after`` chunks when set."""

    def __init__(self, chunks: Iterable[PartialChunk] = (), error: BaseException | None = None, fail_after: int = 0):
        self.chunks = list(chunks)
        self.error = error
        self.fail_after = fail_after
        self.calls: list[tuple[str, object]] = []
        self.yielded = 0

    def open_sync_stream(self, deployment_name, options):
        self.calls.append((deployment_name, options))
        return self._iterate()

    def _iterate(self):
        for i, chunk in enumerate(self.chunks):
            if self.error is not None and i == self.fail_after:
                raise self.error
            self.yielded += 1
            yield chunk
        if self.error is not None and self.fail_after >= len(self.chunks):
            raise self.error


class FakePushSource:
    def __init__(self, transport: "FakeAsyncTransport") -> None:
        self._transport = transport

    def subscribe(self, on_next, on_error, on_complete):
        t = self._transport

        def deliver():
            t.delivery_thread = threading.current_thread()
            for i, chunk in enumerate(t.chunks):
                if t.error is not None and i == t.fail_after:
                    on_error(t.error)
                    return
                on_next(chunk)
            if t.error is not None:
                on_error(t.error)
            else:
                on_complete()

        thread = threading.Thread(target=deliver, daemon=True)
        t.threads.append(thread)
        thread.start()
        return thread


class FakeAsyncTransport:
    """Delivers chunks on its own thread, like a reactive HTTP client."""

    def __init__(self, chunks: Iterable[PartialChunk] = (), error: BaseException | None = None, fail_after: int = 0):
        self.chunks = list(chunks)
        self.error = error
        self.fail_after = fail_after
        self.calls: list[tuple[str, object]] = []
        self.threads: list[threading.Thread] = []
        self.delivery_thread: threading.Thread | None = None

    def open_async_stream(self, deployment_name, options):
        self.calls.append((deployment_name, options))
        return FakePushSource(self)


class RecordingHandler:
    """Records every callback in order; ``done`` is set on the terminal one."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []
        self.done = threading.Event()

    @property
    def partials(self) -> list[str]:
        return [value for kind, value in self.events if kind == "partial"]

    @property
    def completions(self) -> list:
        return [value for kind, value in self.events if kind == "complete"]

    @property
    def errors(self) -> list:
        return [value for kind, value in self.events if kind == "error"]

    def on_partial_response(self, text: str) -> None:
        self.events.append(("partial", text))

    def on_complete_response(self, response) -> None:
        self.events.append(("complete", response))
        self.done.set()

    def on_error(self, error: BaseException) -> None:
        self.events.append(("error", error))
        self.done.set()


class RecordingListener(ChatModelListener):
    def __init__(self, log: list | None = None, name: str = "listener") -> None:
        self.log = log if log is not None else []
        self.name = name
        self.requests: list = []
        self.responses: list = []
        self.errors: list = []

    def on_request(self, event) -> None:
        self.log.append((self.name, "request"))
        self.requests.append(event)

    def on_response(self, event) -> None:
        self.log.append((self.name, "response"))
        self.responses.append(event)

    def on_error(self, event) -> None:
        self.log.append((self.name, "error"))
        self.errors.append(event)


@pytest.fixture
def estimator() -> WordCountEstimator:
    return WordCountEstimator()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()
