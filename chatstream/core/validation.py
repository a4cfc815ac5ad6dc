"""Request parameter checks. Run before any transport call or listener notification."""

from __future__ import annotations

from chatstream.core.errors import ValidationError
from chatstream.core.messages import ChatRequest

MAX_STOP_SEQUENCES = 4


def _check_range(name: str, value: float | None, low: float, high: float, *, low_inclusive: bool = True) -> None:
    if value is None:
        return
    too_low = value < low if low_inclusive else value <= low
    if too_low or value > high:
        bracket = "[" if low_inclusive else "("
        raise ValidationError(f"{name} must be in {bracket}{low}, {high}], got {value}")


def validate_request(request: ChatRequest) -> None:
    """Raise ValidationError for malformed or unsupported request parameters."""
    if not request.messages:
        raise ValidationError("messages must not be empty")
    # The deployment is fixed per client; a per-request model cannot be honored.
    if request.model_name is not None:
        raise ValidationError("model_name is not supported; configure the deployment name on the client")
    if request.top_k is not None:
        raise ValidationError("top_k is not supported by this provider")

    _check_range("temperature", request.temperature, 0.0, 2.0)
    _check_range("top_p", request.top_p, 0.0, 1.0, low_inclusive=False)
    _check_range("presence_penalty", request.presence_penalty, -2.0, 2.0)
    _check_range("frequency_penalty", request.frequency_penalty, -2.0, 2.0)

    if request.max_output_tokens is not None and request.max_output_tokens <= 0:
        raise ValidationError(f"max_output_tokens must be positive, got {request.max_output_tokens}")
    if request.logit_bias:
        for token, bias in request.logit_bias.items():
            if not -100 <= bias <= 100:
                raise ValidationError(f"logit_bias for token {token!r} must be in [-100, 100], got {bias}")
    if request.stop_sequences is not None and len(request.stop_sequences) > MAX_STOP_SEQUENCES:
        raise ValidationError(f"at most {MAX_STOP_SEQUENCES} stop sequences are supported")

    names = [tool.name for tool in request.tool_specifications]
    if any(not name for name in names):
        raise ValidationError("tool specifications must have a name")
    if len(set(names)) != len(names):
        raise ValidationError("tool specification names must be unique")
