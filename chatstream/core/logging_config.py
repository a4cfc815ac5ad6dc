"""Structured logging. API keys and bearer tokens never reach log output."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

REDACTED = "[REDACTED]"

_SECRET_KEYS = ("api_key", "apikey", "authorization", "password", "secret", "access_token")
_SECRET_PREFIXES = ("bearer ", "sk-")

# Attributes every LogRecord carries; anything else was passed through ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


def _is_secret_key(key: Any) -> bool:
    name = str(key).lower()
    return any(s in name for s in _SECRET_KEYS)


def _redact(obj: Any, key: Any = None) -> Any:
    if key is not None and _is_secret_key(key) and obj:
        return REDACTED
    if isinstance(obj, dict):
        return {k: _redact(v, k) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_redact(v) for v in obj]
    if isinstance(obj, str) and obj.lower().startswith(_SECRET_PREFIXES):
        return REDACTED
    return obj


class StructuredFormatter(logging.Formatter):
    """JSON or key=value lines with ``extra`` fields inlined and redacted."""

    def __init__(self, use_json: bool = True) -> None:
        super().__init__()
        self.use_json = use_json

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                log_dict[key] = _redact(value, key)
        if self.use_json:
            return json.dumps(log_dict, default=str)
        parts = [f"{k}={v!r}" for k, v in log_dict.items()]
        return " ".join(parts)


def setup_logging(level: str = "INFO", use_json: bool = True) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    structured = [h for h in root.handlers if isinstance(h.formatter, StructuredFormatter)]
    if structured:
        for handler in structured:
            handler.formatter.use_json = use_json
        return
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter(use_json=use_json))
        root.addHandler(handler)
