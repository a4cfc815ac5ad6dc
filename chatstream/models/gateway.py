"""Build a StreamingChatModel from Config: picks Azure vs api.openai.com and pull vs push transport."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from openai import AsyncAzureOpenAI, AsyncOpenAI, AzureOpenAI, OpenAI

from chatstream.core.errors import ConfigurationError
from chatstream.core.events import ModelProvider
from chatstream.core.listeners import ChatModelListener, LoggingChatModelListener
from chatstream.core.messages import ResponseFormat, ResponseFormatType
from chatstream.core.orchestrator import StreamingChatModel
from chatstream.core.tokens import TiktokenCountEstimator, TokenCountEstimator
from chatstream.models.openai_async import OpenAIAsyncTransport
from chatstream.models.openai_sync import OpenAISyncTransport

if TYPE_CHECKING:
    from chatstream.config.loader import ClientSettings, Config

logger = logging.getLogger(__name__)

OPENAI_ENDPOINT = "https://api.openai.com/v1"


def _client_kwargs(settings: "ClientSettings") -> dict:
    kwargs: dict = {"timeout": settings.timeout_seconds, "max_retries": settings.max_retries}
    if settings.custom_headers:
        kwargs["default_headers"] = dict(settings.custom_headers)
    return kwargs


def build_openai_client(settings: "ClientSettings") -> tuple[object, ModelProvider]:
    """SDK client for the configured endpoint. Azure when an Azure key is set, else api.openai.com."""
    kwargs = _client_kwargs(settings)
    if settings.api_key:
        if not settings.endpoint:
            raise ConfigurationError("Azure OpenAI needs client.endpoint (CHATSTREAM_ENDPOINT)")
        cls = AsyncAzureOpenAI if settings.use_async else AzureOpenAI
        client = cls(
            azure_endpoint=settings.endpoint,
            api_key=settings.api_key,
            api_version=settings.api_version,
            **kwargs,
        )
        return client, ModelProvider.AZURE_OPEN_AI
    if settings.non_azure_api_key:
        cls = AsyncOpenAI if settings.use_async else OpenAI
        client = cls(
            api_key=settings.non_azure_api_key,
            base_url=settings.endpoint or OPENAI_ENDPOINT,
            **kwargs,
        )
        return client, ModelProvider.OPEN_AI
    raise ConfigurationError("no API key configured: set AZURE_OPENAI_API_KEY or OPENAI_API_KEY")


def _default_response_format(name: str | None) -> ResponseFormat | None:
    if not name:
        return None
    try:
        return ResponseFormat(type=ResponseFormatType(name.lower()))
    except ValueError as e:
        raise ConfigurationError(f"unknown default response format {name!r}; expected text or json") from e


def build_streaming_model(
    config: "Config",
    *,
    listeners: Iterable[ChatModelListener] | None = None,
    token_estimator: TokenCountEstimator | None = None,
) -> StreamingChatModel:
    client, provider = build_openai_client(config.client)
    if config.client.use_async:
        transports = {"async_transport": OpenAIAsyncTransport(client, include_usage=config.client.include_usage)}
    else:
        transports = {"sync_transport": OpenAISyncTransport(client, include_usage=config.client.include_usage)}

    all_listeners = list(listeners or [])
    if config.logging.log_requests:
        all_listeners.append(LoggingChatModelListener())

    defaults = config.defaults
    logger.info(
        "streaming model configured",
        extra={
            "provider": provider.value,
            "deployment": config.client.deployment_name,
            "mode": "async" if config.client.use_async else "sync",
        },
    )
    return StreamingChatModel(
        **transports,
        deployment_name=config.client.deployment_name,
        token_estimator=token_estimator or TiktokenCountEstimator(defaults.token_estimator_model),
        listeners=all_listeners,
        response_format=_default_response_format(defaults.response_format),
        strict_json_schema=defaults.strict_json_schema,
        provider=provider,
        max_tokens=defaults.max_tokens,
        temperature=defaults.temperature,
        top_p=defaults.top_p,
        logit_bias=defaults.logit_bias,
        user=defaults.user,
        stop=defaults.stop,
        presence_penalty=defaults.presence_penalty,
        frequency_penalty=defaults.frequency_penalty,
        seed=defaults.seed,
    )
