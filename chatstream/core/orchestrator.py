"""Streaming orchestrator: one request, one transport stream, exactly one terminal callback.

Per-request state machine: VALIDATING -> REQUESTING -> STREAMING -> COMPLETED | FAILED.
Validation and capability failures are raised from ``stream``/``chat`` before any
listener fires. Everything after the transport call resolves through the handler.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Optional, Protocol, TypeVar

from chatstream.core.accumulator import ResponseAccumulator
from chatstream.core.errors import ConfigurationError, UnsupportedCapabilityError
from chatstream.core.events import ErrorRaised, ModelProvider, RequestStarted, ResponseCompleted
from chatstream.core.listeners import ChatModelListener, ListenerDispatcher
from chatstream.core.messages import ChatRequest, ResponseFormat, ToolChoice, ToolSpecification
from chatstream.core.response import AccumulatedResponse, PartialChunk
from chatstream.core.tokens import TiktokenCountEstimator, TokenCountEstimator
from chatstream.core.validation import validate_request
from chatstream.models.streaming import AsyncChatTransport, ChatCompletionOptions, SyncChatTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DEPLOYMENT_NAME = "gpt-35-turbo"


class StreamState(str, Enum):
    VALIDATING = "validating"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class AtomicReference(Generic[T]):
    """Single-slot reference updated under a lock; read and written from different threads."""

    def __init__(self, value: Optional[T] = None) -> None:
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> Optional[T]:
        with self._lock:
            return self._value

    def set(self, value: Optional[T]) -> None:
        with self._lock:
            self._value = value


class StreamingResponseHandler(Protocol):
    def on_partial_response(self, text: str) -> None: ...

    def on_complete_response(self, response: AccumulatedResponse) -> None: ...

    def on_error(self, error: BaseException) -> None: ...


class CallbackResponseHandler:
    """Adapts three plain callables to StreamingResponseHandler."""

    def __init__(
        self,
        on_partial_response: Callable[[str], None],
        on_complete_response: Callable[[AccumulatedResponse], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        self._on_partial_response = on_partial_response
        self._on_complete_response = on_complete_response
        self._on_error = on_error

    def on_partial_response(self, text: str) -> None:
        self._on_partial_response(text)

    def on_complete_response(self, response: AccumulatedResponse) -> None:
        self._on_complete_response(response)

    def on_error(self, error: BaseException) -> None:
        self._on_error(error)


class _StreamSession:
    """Chunk processing for one request, shared by the pull and push strategies.

    ``on_next``/``on_complete``/``on_error`` follow the push-source contract; the pull
    strategy drives them from its loop. Terminal states are absorbing.
    """

    def __init__(
        self,
        *,
        request: ChatRequest,
        provider: ModelProvider,
        handler: StreamingResponseHandler,
        dispatcher: ListenerDispatcher,
        accumulator: ResponseAccumulator,
        input_token_count: int,
        attributes: dict[Any, Any],
    ) -> None:
        self._request = request
        self._provider = provider
        self._handler = handler
        self._dispatcher = dispatcher
        self._accumulator = accumulator
        self._input_token_count = input_token_count
        self._attributes = attributes
        self._state = StreamState.REQUESTING
        self._lock = threading.Lock()
        self.response_id: AtomicReference[str] = AtomicReference()

    @property
    def state(self) -> StreamState:
        with self._lock:
            return self._state

    @property
    def terminated(self) -> bool:
        return self.state in (StreamState.COMPLETED, StreamState.FAILED)

    def start(self) -> None:
        with self._lock:
            if self._state is StreamState.REQUESTING:
                self._state = StreamState.STREAMING

    def _terminate(self, state: StreamState) -> bool:
        with self._lock:
            if self._state in (StreamState.COMPLETED, StreamState.FAILED):
                return False
            self._state = state
            return True

    def on_next(self, chunk: PartialChunk) -> None:
        if self.state is not StreamState.STREAMING:
            return
        try:
            self._accumulator.append(chunk)
            if chunk.id:
                self.response_id.set(chunk.id)
            if chunk.text:
                self._handler.on_partial_response(chunk.text)
        except Exception as e:
            self.on_error(e)

    def on_complete(self) -> None:
        failure: Exception | None = None
        # finalize and the state change happen together so a racing signal cannot interleave
        with self._lock:
            if self._state in (StreamState.COMPLETED, StreamState.FAILED):
                return
            try:
                response = self._accumulator.finalize(self._input_token_count)
            except Exception as e:
                failure = e
            else:
                self._state = StreamState.COMPLETED
        if failure is not None:
            self.on_error(failure)
            return
        response_id = self.response_id.get()
        if response_id != response.id:
            response = response.model_copy(update={"id": response_id})
        logger.debug(
            "stream completed",
            extra={
                "response_id": response_id,
                "finish_reason": response.finish_reason.value if response.finish_reason else None,
                "output_tokens": response.usage.output_tokens,
            },
        )
        self._dispatcher.notify(
            ResponseCompleted(
                response=response,
                request=self._request,
                provider=self._provider,
                attributes=self._attributes,
            )
        )
        self._invoke("on_complete_response", self._handler.on_complete_response, response)

    def on_error(self, error: BaseException) -> None:
        if not self._terminate(StreamState.FAILED):
            logger.debug("error after terminal state ignored: %s", error)
            return
        logger.debug(
            "stream failed: %s",
            error,
            extra={"response_id": self.response_id.get(), "error_type": type(error).__name__},
        )
        self._dispatcher.notify(
            ErrorRaised(
                error=error,
                request=self._request,
                provider=self._provider,
                attributes=self._attributes,
            )
        )
        self._invoke("on_error", self._handler.on_error, error)

    @staticmethod
    def _invoke(name: str, callback: Callable[[Any], None], argument: Any) -> None:
        # The request is already terminal; a failing handler cannot change the outcome.
        try:
            callback(argument)
        except Exception:
            logger.exception("response handler %s raised", name)


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _sent_request(request: ChatRequest, options: ChatCompletionOptions) -> ChatRequest:
    """The request as listeners see it: the deployment as model and the merged parameters."""
    return ChatRequest(
        messages=options.messages,
        tool_specifications=options.tools or (),
        tool_choice=request.tool_choice if options.tools else None,
        response_format=options.response_format,
        model_name=options.model,
        temperature=options.temperature,
        top_p=options.top_p,
        presence_penalty=options.presence_penalty,
        frequency_penalty=options.frequency_penalty,
        logit_bias=options.logit_bias,
        stop_sequences=options.stop,
        seed=options.seed,
        max_output_tokens=options.max_tokens,
        user=options.user,
    )


class StreamingChatModel:
    """Streams chat completions through exactly one transport (pull or push).

    Client-level sampling parameters act as defaults; a request value overrides them.
    """

    def __init__(
        self,
        sync_transport: SyncChatTransport | None = None,
        async_transport: AsyncChatTransport | None = None,
        *,
        deployment_name: str | None = None,
        token_estimator: TokenCountEstimator | None = None,
        listeners: Iterable[ChatModelListener] | None = None,
        response_format: ResponseFormat | None = None,
        strict_json_schema: bool = False,
        provider: ModelProvider = ModelProvider.AZURE_OPEN_AI,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        logit_bias: dict[str, int] | None = None,
        user: str | None = None,
        stop: Iterable[str] | None = None,
        presence_penalty: float | None = None,
        frequency_penalty: float | None = None,
        seed: int | None = None,
    ) -> None:
        if (sync_transport is None) == (async_transport is None):
            raise ConfigurationError("exactly one of sync_transport or async_transport must be configured")
        self._sync_transport = sync_transport
        self._async_transport = async_transport
        self._deployment_name = deployment_name or DEFAULT_DEPLOYMENT_NAME
        self._token_estimator = token_estimator or TiktokenCountEstimator()
        self._dispatcher = ListenerDispatcher(listeners)
        self._response_format = response_format
        self._strict_json_schema = strict_json_schema
        self._provider = provider
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._top_p = top_p
        self._logit_bias = logit_bias
        self._user = user
        self._stop = tuple(stop) if stop is not None else None
        self._presence_penalty = presence_penalty
        self._frequency_penalty = frequency_penalty
        self._seed = seed

    @property
    def deployment_name(self) -> str:
        return self._deployment_name

    def listeners(self) -> list[ChatModelListener]:
        return self._dispatcher.listeners

    def provider(self) -> ModelProvider:
        return self._provider

    def stream(
        self,
        request: ChatRequest,
        on_partial_response: Callable[[str], None],
        on_complete_response: Callable[[AccumulatedResponse], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        self.chat(request, CallbackResponseHandler(on_partial_response, on_complete_response, on_error))

    def chat(self, request: ChatRequest, handler: StreamingResponseHandler) -> None:
        """Stream one request.

        Raises ValidationError or UnsupportedCapabilityError before anything is sent.
        In pull mode this blocks until the terminal callback has run; in push mode it
        returns once the stream is subscribed.
        """
        validate_request(request)
        response_format = request.response_format or self._response_format

        tools: tuple[ToolSpecification, ...] | None = None
        forced_tool: ToolSpecification | None = None
        if request.tool_specifications:
            tools = request.tool_specifications
            if request.tool_choice == ToolChoice.REQUIRED:
                if len(tools) != 1:
                    raise UnsupportedCapabilityError(
                        "ToolChoice.REQUIRED is currently supported only when there is a single tool"
                    )
                forced_tool = tools[0]

        options = self._build_options(request, response_format, tools, forced_tool)
        sent_request = _sent_request(request, options)
        input_token_count = self._token_estimator.estimate_token_count_in_messages(request.messages)

        attributes: dict[Any, Any] = {}
        session = _StreamSession(
            request=sent_request,
            provider=self._provider,
            handler=handler,
            dispatcher=self._dispatcher,
            accumulator=ResponseAccumulator(self._token_estimator),
            input_token_count=input_token_count,
            attributes=attributes,
        )
        self._dispatcher.notify(RequestStarted(request=sent_request, provider=self._provider, attributes=attributes))
        logger.debug(
            "stream requested",
            extra={
                "deployment": self._deployment_name,
                "mode": "sync" if self._sync_transport is not None else "async",
                "input_tokens": input_token_count,
                "tools": len(tools or ()),
                "forced_tool": forced_tool.name if forced_tool else None,
            },
        )

        if self._sync_transport is not None:
            self._sync_call(session, options)
        elif self._async_transport is not None:
            self._async_call(session, options)

    def _build_options(
        self,
        request: ChatRequest,
        response_format: ResponseFormat | None,
        tools: tuple[ToolSpecification, ...] | None,
        forced_tool: ToolSpecification | None,
    ) -> ChatCompletionOptions:
        return ChatCompletionOptions(
            messages=request.messages,
            model=self._deployment_name,
            max_tokens=_first(request.max_output_tokens, self._max_tokens),
            temperature=_first(request.temperature, self._temperature),
            top_p=_first(request.top_p, self._top_p),
            logit_bias=_first(request.logit_bias, self._logit_bias),
            user=_first(request.user, self._user),
            stop=_first(request.stop_sequences, self._stop),
            presence_penalty=_first(request.presence_penalty, self._presence_penalty),
            frequency_penalty=_first(request.frequency_penalty, self._frequency_penalty),
            seed=_first(request.seed, self._seed),
            tools=tools,
            tool_choice=forced_tool,
            response_format=response_format,
            strict_json_schema=self._strict_json_schema,
        )

    def _sync_call(self, session: _StreamSession, options: ChatCompletionOptions) -> None:
        chunks: Iterable[PartialChunk] | None = None
        try:
            session.start()
            chunks = self._sync_transport.open_sync_stream(self._deployment_name, options)
            for chunk in chunks:
                session.on_next(chunk)
                if session.terminated:
                    break
        except Exception as e:
            session.on_error(e)
        else:
            session.on_complete()
        finally:
            close = getattr(chunks, "close", None)
            if callable(close):
                try:
                    close()
                except Exception as e:
                    logger.debug("closing chunk stream failed: %s", e)

    def _async_call(self, session: _StreamSession, options: ChatCompletionOptions) -> None:
        try:
            source = self._async_transport.open_async_stream(self._deployment_name, options)
            session.start()
            source.subscribe(session.on_next, session.on_error, session.on_complete)
        except Exception as e:
            session.on_error(e)
