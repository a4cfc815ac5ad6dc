"""Entry point: stream one prompt to stdout.

Usage:
  chatstream "Tell me a joke"
  chatstream --system "Answer in French" "Hello"
  chatstream --json-schema schema.json "List three colors"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from chatstream.config.loader import get_config
from chatstream.core.errors import ChatStreamError
from chatstream.core.logging_config import setup_logging
from chatstream.core.messages import ChatMessage, ChatRequest, ResponseFormat

if TYPE_CHECKING:
    from chatstream.core.response import AccumulatedResponse

logger = logging.getLogger(__name__)


class _ConsolePrinter:
    """Writes tokens as they arrive and signals when the stream ends."""

    def __init__(self, out=None, err=None) -> None:
        self._out = out or sys.stdout
        self._err = err or sys.stderr
        self.done = threading.Event()
        self.error: BaseException | None = None
        self.response: AccumulatedResponse | None = None

    def on_partial_response(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()

    def on_complete_response(self, response: AccumulatedResponse) -> None:
        self.response = response
        self._out.write("\n")
        for request in response.tool_execution_requests:
            self._out.write(f"[tool call] {request.name}({request.arguments})\n")
        usage = response.usage
        self._err.write(
            f"finish_reason={response.finish_reason.value if response.finish_reason else None} "
            f"input_tokens={usage.input_tokens} output_tokens={usage.output_tokens}\n"
        )
        self.done.set()

    def on_error(self, error: BaseException) -> None:
        self.error = error
        self._err.write(f"\nerror: {error}\n")
        self.done.set()


def build_request(prompt: str, system: str | None = None, schema_path: str | None = None) -> ChatRequest:
    messages = []
    if system:
        messages.append(ChatMessage.system(system))
    messages.append(ChatMessage.user(prompt))
    response_format = None
    if schema_path:
        schema = json.loads(Path(schema_path).read_text(encoding="utf-8"))
        response_format = ResponseFormat.json_format(json_schema=schema, name=Path(schema_path).stem)
    return ChatRequest(messages=messages, response_format=response_format)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="chatstream", description="Stream a chat completion to stdout")
    parser.add_argument("prompt", help="User message")
    parser.add_argument("--system", default=None, help="System message")
    parser.add_argument("--config", default=None, help="YAML config path")
    parser.add_argument("--json-schema", default=None, help="JSON schema file for a structured response")
    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(level=config.logging.level, use_json=config.logging.json_format)

    from chatstream.models.gateway import build_streaming_model

    printer = _ConsolePrinter()
    try:
        model = build_streaming_model(config)
        model.chat(build_request(args.prompt, args.system, args.json_schema), printer)
    except ChatStreamError as e:
        logger.error("request rejected: %s", e)
        return 2
    printer.done.wait()
    return 1 if printer.error is not None else 0


if __name__ == "__main__":
    sys.exit(main())
