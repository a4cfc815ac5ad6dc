"""Tests for ResponseAccumulator: content, metadata, tool calls, usage, finalize-once."""

from __future__ import annotations

import pytest

from chatstream.core.accumulator import ResponseAccumulator
from chatstream.core.errors import StreamStateError
from chatstream.core.response import FinishReason, PartialChunk, TokenUsage, ToolCallDelta

from conftest import WordCountEstimator


def test_concatenates_deltas_and_keeps_last_finish_reason():
    acc = ResponseAccumulator(WordCountEstimator())
    acc.append(PartialChunk(text="Hel"))
    acc.append(PartialChunk(text="lo"))
    acc.append(PartialChunk(text=" world", finish_reason=FinishReason.STOP))
    response = acc.finalize(5)
    assert response.content == "Hello world"
    assert response.finish_reason == FinishReason.STOP
    assert response.finish_reason == "stop"


def test_finalize_without_chunks_yields_empty_response():
    response = ResponseAccumulator(WordCountEstimator()).finalize(3)
    assert response.content == ""
    assert response.finish_reason is None
    assert response.id is None
    assert response.tool_execution_requests == ()
    assert response.usage.input_tokens == 3
    assert response.usage.output_tokens == 0


def test_metadata_only_chunks_leave_content_untouched():
    acc = ResponseAccumulator()
    acc.append(PartialChunk(text="a"))
    acc.append(PartialChunk(id="chatcmpl-1", model="gpt-4o"))
    acc.append(PartialChunk())
    response = acc.finalize()
    assert response.content == "a"
    assert response.id == "chatcmpl-1"
    assert response.model == "gpt-4o"


def test_identifier_tracks_latest_non_empty_value():
    acc = ResponseAccumulator()
    acc.append(PartialChunk(text="x", id=""))
    acc.append(PartialChunk(text="y", id="abc"))
    acc.append(PartialChunk(text="z", id=None))
    assert acc.finalize().id == "abc"


def test_last_non_empty_finish_reason_wins():
    acc = ResponseAccumulator()
    acc.append(PartialChunk(finish_reason=FinishReason.LENGTH))
    acc.append(PartialChunk(text="more"))
    acc.append(PartialChunk(finish_reason=FinishReason.CONTENT_FILTER))
    acc.append(PartialChunk(finish_reason=None))
    assert acc.finalize().finish_reason == FinishReason.CONTENT_FILTER


def test_output_tokens_estimated_from_content_without_vendor_usage():
    acc = ResponseAccumulator(WordCountEstimator())
    acc.append(PartialChunk(text="one two "))
    acc.append(PartialChunk(text="three"))
    usage = acc.finalize(4).usage
    assert usage.input_tokens == 4
    assert usage.output_tokens == 3
    assert usage.total_tokens == 7


def test_vendor_usage_output_tokens_preferred():
    acc = ResponseAccumulator(WordCountEstimator())
    acc.append(PartialChunk(text="one two three"))
    acc.append(PartialChunk(usage=TokenUsage(input_tokens=11, output_tokens=9)))
    usage = acc.finalize(4).usage
    assert usage.output_tokens == 9
    assert usage.input_tokens == 4
    assert usage.total_tokens == 13


def test_no_estimator_counts_zero_output_tokens():
    acc = ResponseAccumulator()
    acc.append(PartialChunk(text="some text"))
    assert acc.finalize(2).usage.output_tokens == 0


def test_tool_call_fragments_merge_by_index():
    acc = ResponseAccumulator(WordCountEstimator())
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=0, id="call_1", name="get_weather"),)))
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=1, id="call_2", name="get_time"),)))
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=0, arguments='{"city": '),)))
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=0, arguments='"Paris"}'),)))
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=1, arguments="{}"),)))
    response = acc.finalize()
    assert response.has_tool_execution_requests()
    first, second = response.tool_execution_requests
    assert (first.id, first.name, first.arguments) == ("call_1", "get_weather", '{"city": "Paris"}')
    assert (second.id, second.name, second.arguments) == ("call_2", "get_time", "{}")
    assert response.finish_reason == FinishReason.TOOL_EXECUTION


def test_tool_call_output_tokens_counted_from_requests():
    acc = ResponseAccumulator(WordCountEstimator())
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=0, id="c", name="lookup", arguments="a b"),)))
    assert acc.finalize().usage.output_tokens == 3


def test_tool_call_without_name_is_dropped():
    acc = ResponseAccumulator()
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=0, arguments="{}"),)))
    response = acc.finalize()
    assert response.tool_execution_requests == ()
    assert response.finish_reason is None


def test_finalize_twice_raises():
    acc = ResponseAccumulator()
    acc.finalize()
    assert acc.finalized
    with pytest.raises(StreamStateError):
        acc.finalize()


def test_append_after_finalize_raises():
    acc = ResponseAccumulator()
    acc.finalize()
    with pytest.raises(StreamStateError):
        acc.append(PartialChunk(text="late"))


def test_ai_message_carries_content_and_tool_calls():
    acc = ResponseAccumulator()
    acc.append(PartialChunk(text="Calling a tool"))
    acc.append(PartialChunk(tool_calls=(ToolCallDelta(index=0, id="c1", name="f", arguments="{}"),)))
    message = acc.finalize().ai_message()
    assert message.role.value == "assistant"
    assert message.content == "Calling a tool"
    assert message.tool_execution_requests[0].name == "f"
