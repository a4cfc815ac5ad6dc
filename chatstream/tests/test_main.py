"""Tests for the command-line entry point."""

from __future__ import annotations

import io
import json
from unittest.mock import patch

from chatstream.core.errors import ValidationError
from chatstream.core.messages import ResponseFormatType, Role, ToolExecutionRequest
from chatstream.core.response import AccumulatedResponse, FinishReason, TokenUsage
from chatstream.main import _ConsolePrinter, build_request, main


def test_build_request_with_system_message():
    request = build_request("Hello", system="Answer in French")
    assert [m.role for m in request.messages] == [Role.SYSTEM, Role.USER]
    assert request.messages[1].content == "Hello"
    assert request.response_format is None


def test_build_request_with_schema(tmp_path):
    path = tmp_path / "colors.json"
    path.write_text(json.dumps({"type": "object", "properties": {"colors": {"type": "array"}}}))
    request = build_request("List colors", schema_path=str(path))
    assert request.response_format.type == ResponseFormatType.JSON
    assert request.response_format.name == "colors"
    assert request.response_format.json_schema["type"] == "object"


def test_printer_writes_tokens_and_summary():
    out, err = io.StringIO(), io.StringIO()
    printer = _ConsolePrinter(out, err)
    printer.on_partial_response("Hel")
    printer.on_partial_response("lo")
    printer.on_complete_response(
        AccumulatedResponse(
            content="Hello",
            finish_reason=FinishReason.TOOL_EXECUTION,
            tool_execution_requests=[ToolExecutionRequest(id="c", name="lookup", arguments='{"q":1}')],
            usage=TokenUsage(input_tokens=3, output_tokens=2),
        )
    )
    assert out.getvalue() == 'Hello\n[tool call] lookup({"q":1})\n'
    assert "finish_reason=tool_execution" in err.getvalue()
    assert "output_tokens=2" in err.getvalue()
    assert printer.done.is_set()


def test_printer_records_error():
    err = io.StringIO()
    printer = _ConsolePrinter(io.StringIO(), err)
    printer.on_error(TimeoutError("slow"))
    assert isinstance(printer.error, TimeoutError)
    assert "error: slow" in err.getvalue()
    assert printer.done.is_set()


def test_main_without_credentials_returns_2():
    assert main(["hi"]) == 2


def test_main_streams_response():
    class _Model:
        def chat(self, request, handler):
            handler.on_partial_response("pong")
            handler.on_complete_response(AccumulatedResponse(content="pong"))

    with patch("chatstream.models.gateway.build_streaming_model", return_value=_Model()):
        assert main(["ping"]) == 0


def test_main_reports_streamed_error():
    class _Model:
        def chat(self, request, handler):
            handler.on_error(ConnectionError("reset"))

    with patch("chatstream.models.gateway.build_streaming_model", return_value=_Model()):
        assert main(["ping"]) == 1


def test_main_rejected_request_returns_2():
    class _Model:
        def chat(self, request, handler):
            raise ValidationError("temperature out of range")

    with patch("chatstream.models.gateway.build_streaming_model", return_value=_Model()):
        assert main(["ping"]) == 2
