"""Blocking transport: pulls chat-completion chunks from the OpenAI/Azure OpenAI SDK on the caller's thread."""

from __future__ import annotations

import logging
from typing import Iterator

from openai import AzureOpenAI, OpenAI, OpenAIError

from chatstream.core.errors import TransportError
from chatstream.core.response import PartialChunk
from chatstream.models.streaming import ChatCompletionOptions
from chatstream.models.wire import from_openai_chunk, to_openai_kwargs

logger = logging.getLogger(__name__)


def to_transport_error(error: OpenAIError) -> TransportError:
    """Wrap a vendor error. The original stays reachable as ``__cause__`` even when not raised."""
    wrapped = TransportError(
        f"{type(error).__name__}: {error}",
        status_code=getattr(error, "status_code", None),
    )
    wrapped.__cause__ = error
    return wrapped


class OpenAISyncTransport:
    """Pull-mode transport over ``client.chat.completions.create(stream=True)``."""

    def __init__(self, client: OpenAI | AzureOpenAI, *, include_usage: bool = True) -> None:
        self._client = client
        self._include_usage = include_usage

    def open_sync_stream(self, deployment_name: str, options: ChatCompletionOptions) -> Iterator[PartialChunk]:
        kwargs = to_openai_kwargs(options, include_usage=self._include_usage)
        kwargs["model"] = deployment_name
        logger.debug("opening chat completions stream", extra={"deployment": deployment_name, "mode": "sync"})
        try:
            stream = self._client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            raise to_transport_error(e) from e
        return self._iterate(stream)

    @staticmethod
    def _iterate(stream) -> Iterator[PartialChunk]:
        try:
            for chunk in stream:
                yield from_openai_chunk(chunk)
        except OpenAIError as e:
            raise to_transport_error(e) from e
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()
