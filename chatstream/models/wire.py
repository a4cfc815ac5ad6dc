"""Mapping between ChatCompletionOptions/PartialChunk and the OpenAI chat-completions wire format."""

from __future__ import annotations

from typing import Any

from chatstream.core.messages import ChatMessage, ResponseFormat, ResponseFormatType, Role, ToolSpecification
from chatstream.core.response import FinishReason, PartialChunk, TokenUsage, ToolCallDelta
from chatstream.models.streaming import ChatCompletionOptions

DEFAULT_SCHEMA_NAME = "response"


def to_openai_message(message: ChatMessage) -> dict[str, Any]:
    out: dict[str, Any] = {"role": message.role.value}
    if message.role == Role.TOOL:
        out["tool_call_id"] = message.tool_call_id
        out["content"] = message.content or ""
        return out
    if message.role == Role.ASSISTANT and message.tool_execution_requests:
        out["content"] = message.content
        out["tool_calls"] = [
            {
                "id": request.id,
                "type": "function",
                "function": {"name": request.name, "arguments": request.arguments},
            }
            for request in message.tool_execution_requests
        ]
        return out
    out["content"] = message.content or ""
    if message.name and message.role == Role.USER:
        out["name"] = message.name
    return out


def to_openai_tool(tool: ToolSpecification) -> dict[str, Any]:
    function: dict[str, Any] = {"name": tool.name}
    if tool.description:
        function["description"] = tool.description
    function["parameters"] = tool.parameters or {"type": "object", "properties": {}}
    return {"type": "function", "function": function}


def to_openai_tool_choice(tool: ToolSpecification) -> dict[str, Any]:
    return {"type": "function", "function": {"name": tool.name}}


def to_openai_response_format(fmt: ResponseFormat, strict: bool = False) -> dict[str, Any]:
    if fmt.type == ResponseFormatType.TEXT:
        return {"type": "text"}
    if fmt.json_schema is None:
        return {"type": "json_object"}
    return {
        "type": "json_schema",
        "json_schema": {
            "name": fmt.name or DEFAULT_SCHEMA_NAME,
            "schema": fmt.json_schema,
            "strict": strict,
        },
    }


def to_openai_kwargs(options: ChatCompletionOptions, *, include_usage: bool = True) -> dict[str, Any]:
    """Keyword arguments for ``client.chat.completions.create(stream=True, ...)``. None values are dropped."""
    kwargs: dict[str, Any] = {
        "model": options.model,
        "messages": [to_openai_message(m) for m in options.messages],
        "stream": True,
    }
    optional = {
        "max_tokens": options.max_tokens,
        "temperature": options.temperature,
        "top_p": options.top_p,
        "logit_bias": options.logit_bias,
        "user": options.user,
        "stop": list(options.stop) if options.stop else None,
        "presence_penalty": options.presence_penalty,
        "frequency_penalty": options.frequency_penalty,
        "seed": options.seed,
    }
    kwargs.update({k: v for k, v in optional.items() if v is not None})
    if options.tools:
        kwargs["tools"] = [to_openai_tool(t) for t in options.tools]
    if options.tool_choice is not None:
        kwargs["tool_choice"] = to_openai_tool_choice(options.tool_choice)
    if options.response_format is not None:
        kwargs["response_format"] = to_openai_response_format(options.response_format, options.strict_json_schema)
    if include_usage:
        kwargs["stream_options"] = {"include_usage": True}
    return kwargs


def _usage_from_openai(usage: Any) -> TokenUsage | None:
    if usage is None:
        return None
    return TokenUsage(
        input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        total_tokens=int(getattr(usage, "total_tokens", 0) or 0),
    )


def from_openai_chunk(chunk: Any) -> PartialChunk:
    """Map a ``ChatCompletionChunk``. Only the first choice is read; usage-only chunks have no choices."""
    text = None
    finish_reason = None
    tool_calls: list[ToolCallDelta] = []
    choices = getattr(chunk, "choices", None) or []
    if choices:
        choice = choices[0]
        delta = getattr(choice, "delta", None)
        if delta is not None:
            text = getattr(delta, "content", None)
            for call in getattr(delta, "tool_calls", None) or []:
                function = getattr(call, "function", None)
                tool_calls.append(
                    ToolCallDelta(
                        index=getattr(call, "index", 0) or 0,
                        id=getattr(call, "id", None),
                        name=getattr(function, "name", None) if function is not None else None,
                        arguments=(getattr(function, "arguments", None) or "") if function is not None else "",
                    )
                )
        finish_reason = FinishReason.from_wire(getattr(choice, "finish_reason", None))
    return PartialChunk(
        text=text,
        id=getattr(chunk, "id", None) or None,
        model=getattr(chunk, "model", None) or None,
        finish_reason=finish_reason,
        usage=_usage_from_openai(getattr(chunk, "usage", None)),
        tool_calls=tuple(tool_calls),
    )
