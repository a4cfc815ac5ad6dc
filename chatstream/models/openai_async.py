"""Push transport: AsyncOpenAI streaming driven on a transport-managed event loop thread.

``subscribe`` schedules the request on the loop and returns at once; chunks and the
terminal signal are delivered on the loop thread, never on the caller's.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any

from openai import AsyncAzureOpenAI, AsyncOpenAI, OpenAIError

from chatstream.core.errors import TransportError
from chatstream.models.openai_sync import to_transport_error
from chatstream.models.streaming import ChatCompletionOptions, OnComplete, OnError, OnNext
from chatstream.models.wire import from_openai_chunk, to_openai_kwargs

logger = logging.getLogger(__name__)


class EventLoopThread:
    """A daemon thread running one event loop, started on first use."""

    def __init__(self, name: str = "chatstream-transport") -> None:
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def _run(self, loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    def submit(self, coro) -> concurrent.futures.Future:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(target=self._run, args=(self._loop,), name=self._name, daemon=True)
                self._thread.start()
            loop = self._loop
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Cancel pending work, wait for it to unwind, then stop the loop."""
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None or thread is None:
            return
        if thread is not threading.current_thread() and thread.is_alive():
            try:
                asyncio.run_coroutine_threadsafe(_cancel_pending(), loop).result(timeout)
            except concurrent.futures.TimeoutError:
                logger.warning("pending streams did not finish cancelling within %ss", timeout)
        loop.call_soon_threadsafe(loop.stop)
        if thread is not threading.current_thread():
            thread.join(timeout)


async def _cancel_pending() -> None:
    current = asyncio.current_task()
    tasks = [task for task in asyncio.all_tasks() if task is not current]
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class OpenAIPushSource:
    """One prepared request. Subscribing sends it; each subscription is an independent stream."""

    def __init__(
        self,
        client: AsyncOpenAI | AsyncAzureOpenAI,
        kwargs: dict[str, Any],
        loop_thread: EventLoopThread,
    ) -> None:
        self._client = client
        self._kwargs = kwargs
        self._loop_thread = loop_thread

    def subscribe(self, on_next: OnNext, on_error: OnError, on_complete: OnComplete) -> concurrent.futures.Future:
        return self._loop_thread.submit(self.consume(on_next, on_error, on_complete))

    async def consume(self, on_next: OnNext, on_error: OnError, on_complete: OnComplete) -> None:
        """Run the stream to its end, then signal exactly one of on_complete/on_error."""
        try:
            stream = await self._client.chat.completions.create(**self._kwargs)
            async for chunk in stream:
                on_next(from_openai_chunk(chunk))
        except asyncio.CancelledError:
            on_error(TransportError("transport closed"))
            raise
        except OpenAIError as e:
            on_error(to_transport_error(e))
            return
        except Exception as e:
            on_error(e)
            return
        on_complete()


class OpenAIAsyncTransport:
    """Push-mode transport over AsyncOpenAI / AsyncAzureOpenAI."""

    def __init__(
        self,
        client: AsyncOpenAI | AsyncAzureOpenAI,
        *,
        include_usage: bool = True,
        loop_thread: EventLoopThread | None = None,
    ) -> None:
        self._client = client
        self._include_usage = include_usage
        self._loop_thread = loop_thread or EventLoopThread()

    def open_async_stream(self, deployment_name: str, options: ChatCompletionOptions) -> OpenAIPushSource:
        kwargs = to_openai_kwargs(options, include_usage=self._include_usage)
        kwargs["model"] = deployment_name
        logger.debug("prepared chat completions stream", extra={"deployment": deployment_name, "mode": "async"})
        return OpenAIPushSource(self._client, kwargs, self._loop_thread)

    def close(self) -> None:
        self._loop_thread.stop()
