"""Tests for the generic conversation and response types."""

import asyncio

import pytest
from pydantic import ValidationError

from local_providers.adapters.schema import (
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SECONDS,
    FunctionCall,
    FunctionResult,
    GenerationResponse,
    Part,
    RequestOptions,
    StopReason,
    StreamChunk,
    Turn,
)


class TestPart:
    def test_text_part(self):
        assert Part(text="hi").text == "hi"

    def test_empty_text_is_still_a_kind(self):
        assert Part(text="").text == ""

    def test_function_call_part(self):
        part = Part(function_call=FunctionCall(name="foo", args={"x": 1}))
        assert part.function_call.args == {"x": 1}
        assert part.function_call.id is None

    def test_rejects_no_kind(self):
        with pytest.raises(ValidationError, match="exactly one"):
            Part()

    def test_rejects_two_kinds(self):
        with pytest.raises(ValidationError, match="exactly one"):
            Part(text="hi", function_result=FunctionResult(name="foo"))


class TestTurn:
    def test_helpers(self):
        assert Turn.user("A").role == "user"
        assert Turn.assistant("B").get_text() == "B"

    def test_rejects_unknown_role(self):
        with pytest.raises(ValidationError):
            Turn(role="system", parts=[Part(text="x")])

    def test_get_text_skips_function_parts(self):
        turn = Turn(role="assistant", parts=[
            Part(text="a"),
            Part(function_call=FunctionCall(name="foo")),
            Part(text="b"),
        ])
        assert turn.get_text() == "ab"


class TestRequestOptions:
    def test_defaults(self):
        options = RequestOptions()
        assert options.stream is False
        assert options.tools is None
        assert options.cancel_event is None
        assert options.timeout_seconds == DEFAULT_TIMEOUT_SECONDS == 300.0

    def test_unset_temperature_uses_shared_default(self):
        from local_providers.adapters._openai import build_payload

        payload = build_payload(None, [], temperature=None, max_tokens=None, stream=False)
        assert payload["temperature"] == DEFAULT_TEMPERATURE == 0.7

    def test_frozen(self):
        options = RequestOptions(temperature=0.1)
        with pytest.raises(ValidationError):
            options.temperature = 0.9

    def test_accepts_cancel_event(self):
        event = asyncio.Event()
        assert RequestOptions(cancel_event=event).cancel_event is event


class TestGenerationResponse:
    def test_helpers(self):
        response = GenerationResponse(
            output=Turn(role="assistant", parts=[
                Part(text="Calling."),
                Part(function_call=FunctionCall(id="call_1", name="foo")),
            ]),
            stop_reason=StopReason.STOP,
        )

        assert response.text == "Calling."
        assert [c.id for c in response.function_calls] == ["call_1"]
        assert response.index == 0

    def test_stream_chunk_defaults_to_no_stop_reason(self):
        chunk = StreamChunk(output=Turn.assistant("x"))
        assert chunk.stop_reason is None

    def test_stop_reason_values(self):
        assert StopReason("stop") is StopReason.STOP
        assert StopReason.OTHER.value == "other"
