"""Shared test fixtures for local-providers tests."""

import asyncio
import json

import pytest


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

OLLAMA_URL = "http://localhost:11434"
LMSTUDIO_URL = "http://127.0.0.1:1234"
TGI_URL = "http://localhost:8080"
HF_HOSTED_URL = "https://api-inference.huggingface.co"

MOCK_TAGS_RESPONSE = {
    "models": [
        {"name": "qwen2.5-coder:7b", "size": 4661211648},
        {"name": "llava:13b", "size": 8000000000},
        {"name": "llama3.2-vision:11b", "size": 7900000000},
    ]
}

MOCK_MODELS_RESPONSE = {
    "data": [
        {"id": "qwen3-coder-30b", "object": "model", "owned_by": "lmstudio"},
        {"id": "llama-3.2-3b-instruct", "object": "model", "owned_by": "lmstudio"},
    ]
}


def completion_response(content, finish_reason="stop", tool_calls=None) -> dict:
    """Build a /v1/chat/completions (non-streaming) body."""
    message = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1699000000,
        "choices": [
            {"index": 0, "message": message, "finish_reason": finish_reason}
        ],
    }


def sse_line(delta: dict, finish_reason=None) -> str:
    """One `data:` line of a chat.completion.chunk stream."""
    chunk = {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    return f"data: {json.dumps(chunk)}\n\n"


def sse_stream(*deltas: str, finish_reason="stop") -> str:
    """SSE body with one content delta per line; the last carries finish_reason."""
    body = ""
    for i, content in enumerate(deltas):
        last = i == len(deltas) - 1
        body += sse_line({"content": content}, finish_reason if last else None)
    return body + "data: [DONE]\n\n"


def slow_response(delay: float, response):
    """respx side effect that holds the response back for `delay` seconds."""
    async def _side_effect(request):
        await asyncio.sleep(delay)
        return response
    return _side_effect


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Conversations
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def three_turn_conversation():
    """[user:A, assistant:B, user:C]"""
    from local_providers.adapters.schema import Turn
    return [Turn.user("A"), Turn.assistant("B"), Turn.user("C")]


@pytest.fixture
def tool_conversation():
    """A user question, an assistant tool call, and the tool's result."""
    from local_providers.adapters.schema import FunctionCall, FunctionResult, Part, Turn
    return [
        Turn.user("What's the weather in Paris?"),
        Turn(role="assistant", parts=[
            Part(function_call=FunctionCall(id="call_1", name="get_weather", args={"city": "Paris"})),
        ]),
        Turn(role="user", parts=[
            Part(function_result=FunctionResult(name="get_weather", response={"temp_c": 21})),
        ]),
    ]


@pytest.fixture
def options():
    from local_providers.adapters.schema import RequestOptions
    return RequestOptions(temperature=0.2, max_tokens=64, timeout_seconds=5.0)


@pytest.fixture
def weather_tool():
    return {
        "name": "get_weather",
        "description": "Current weather for a city",
        "parameters": {
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    }


@pytest.fixture
def mock_tags_response():
    """Return mock /api/tags response."""
    return json.loads(json.dumps(MOCK_TAGS_RESPONSE))


@pytest.fixture
def mock_models_response():
    """Return mock /v1/models response."""
    return json.loads(json.dumps(MOCK_MODELS_RESPONSE))
