"""Errors raised by the streaming chat layer."""

from __future__ import annotations


class ChatStreamError(Exception):
    """Base error for streaming chat failures."""


class ConfigurationError(ChatStreamError):
    """Raised when a client is built with an invalid configuration."""


class ValidationError(ChatStreamError, ValueError):
    """Raised before any transport call when request parameters are malformed or unsupported."""


class UnsupportedCapabilityError(ChatStreamError):
    """Raised when the provider cannot serve a requested capability."""


class TransportError(ChatStreamError):
    """Raised by transport adapters when the underlying stream fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamStateError(ChatStreamError):
    """Raised when an accumulator is used after it has been finalized."""
