"""
OpenAI Chat Completions wire helpers.

Both the Ollama and LM Studio adapters speak this format, so the
conversions live here: generic turns -> messages, completions and SSE
chunks -> generic responses, and tool-call plumbing.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from local_providers.adapters._http import race_cancel
from local_providers.adapters.schema import (
    DEFAULT_TEMPERATURE,
    FunctionCall,
    GenerationResponse,
    Part,
    StopReason,
    StreamChunk,
    Turn,
)
from local_providers.tool_parsers import generate_call_id

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"

# finish_reason values that mean "the model finished its turn"
STOP_FINISH_REASONS = frozenset({"stop", "tool_calls"})


# ─────────────────────────────────────────────────────────────────────
# REQUEST SIDE
# ─────────────────────────────────────────────────────────────────────

def normalize_tools_for_openai(tools: list[dict]) -> list[dict]:
    """
    Normalize tool definitions to OpenAI format.

    Flat format:
        {"name": "...", "description": "...", "parameters": {...}}

    Declaration groups:
        {"function_declarations": [{"name": "..."}, ...]}

    OpenAI nested format:
        {"type": "function", "function": {"name": "...", ...}}

    Flat tools and group members are wrapped; already-wrapped tools are
    returned as-is.
    """
    normalized = []
    for tool in tools:
        if tool.get("type") == "function" and "function" in tool:
            normalized.append(tool)
            continue
        declarations = tool.get("function_declarations") or tool.get("functionDeclarations")
        if declarations is not None:
            for declaration in declarations:
                normalized.append({"type": "function", "function": declaration})
            continue
        normalized.append({"type": "function", "function": tool})
    return normalized


def flatten_parts(parts: list[Part]) -> str:
    """Render a turn's parts as plain text for backends without tool support."""
    lines = []
    for part in parts:
        if part.text is not None:
            lines.append(part.text)
        elif part.function_call is not None:
            lines.append(f"[Function Call: {part.function_call.name}]")
        elif part.function_result is not None:
            lines.append(f"[Function Response: {part.function_result.name}]")
    return "\n".join(lines)


def to_text_messages(conversation: list[Turn]) -> list[dict]:
    """Convert turns to text-only OpenAI messages (no tool_calls / tool roles)."""
    return [
        {"role": turn.role, "content": flatten_parts(turn.parts)}
        for turn in conversation
    ]


def to_openai_messages(
    conversation: list[Turn], system_prompt: Optional[str] = None
) -> list[dict]:
    """
    Convert turns to OpenAI messages with structured tool calls.

    - assistant function calls become `tool_calls` on the assistant message
    - function results become `tool` messages; a result without an id is
      matched to the latest call with the same name
    """
    messages: list[dict] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    call_ids_by_name: dict[str, str] = {}

    for turn in conversation:
        texts: list[str] = []
        tool_calls: list[dict] = []

        for part in turn.parts:
            if part.text is not None:
                texts.append(part.text)
            elif part.function_call is not None:
                call = part.function_call
                call_id = call.id or generate_call_id()
                call_ids_by_name[call.name] = call_id
                tool_calls.append({
                    "id": call_id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.args)},
                })
            elif part.function_result is not None:
                result = part.function_result
                messages.append({
                    "role": "tool",
                    "tool_call_id": result.id or call_ids_by_name.get(result.name, ""),
                    "content": json.dumps(result.response),
                })

        if turn.role == "assistant":
            if texts or tool_calls:
                message: dict[str, Any] = {
                    "role": "assistant",
                    "content": "\n".join(texts) if texts else None,
                }
                if tool_calls:
                    message["tool_calls"] = tool_calls
                messages.append(message)
        elif texts:
            messages.append({"role": "user", "content": "\n".join(texts)})

    return messages


def build_payload(
    model: Optional[str],
    messages: list[dict],
    temperature: Optional[float],
    max_tokens: Optional[int],
    stream: bool,
    tools: Optional[list[dict]] = None,
) -> dict:
    payload: dict[str, Any] = {}
    if model:
        payload["model"] = model
    payload["messages"] = messages
    payload["temperature"] = DEFAULT_TEMPERATURE if temperature is None else temperature
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    payload["stream"] = stream
    if tools:
        payload["tools"] = normalize_tools_for_openai(tools)
    return payload


# ─────────────────────────────────────────────────────────────────────
# RESPONSE SIDE
# ─────────────────────────────────────────────────────────────────────

def first_envelope(data: Any) -> dict:
    """Some servers wrap the body in a one-element list; accept both."""
    if isinstance(data, list):
        data = data[0] if data else {}
    return data if isinstance(data, dict) else {}


def to_stop_reason(finish_reason: Optional[str]) -> Optional[StopReason]:
    if finish_reason is None:
        return None
    if finish_reason in STOP_FINISH_REASONS:
        return StopReason.STOP
    return StopReason.OTHER


def decode_arguments(raw: Any) -> dict:
    """Lenient decode of structured tool-call arguments."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning(f"Discarding undecodable tool-call arguments: {str(raw)[:200]}")
        return {}
    return decoded if isinstance(decoded, dict) else {}


def tool_calls_to_parts(tool_calls: list[dict]) -> list[Part]:
    parts = []
    for tc in tool_calls:
        func = tc.get("function") or {}
        name = func.get("name")
        if not name:
            continue
        parts.append(Part(function_call=FunctionCall(
            id=tc.get("id") or generate_call_id(),
            name=name,
            args=decode_arguments(func.get("arguments")),
        )))
    return parts


def completion_to_response(data: Any) -> GenerationResponse:
    """Convert a chat.completion body to a GenerationResponse."""
    envelope = first_envelope(data)
    choices = envelope.get("choices") or [{}]
    choice = choices[0] or {}
    message = choice.get("message") or {}

    parts: list[Part] = []
    content = message.get("content")
    if content:
        parts.append(Part(text=content))
    parts.extend(tool_calls_to_parts(message.get("tool_calls") or []))
    if not parts:
        parts.append(Part(text=""))

    return GenerationResponse(
        output=Turn(role="assistant", parts=parts),
        stop_reason=to_stop_reason(choice.get("finish_reason")) or StopReason.OTHER,
        index=choice.get("index", 0) or 0,
    )


def chunk_to_stream_chunk(
    data: dict, extra_parts: Optional[list[Part]] = None
) -> StreamChunk:
    """Convert one chat.completion.chunk to a StreamChunk."""
    choices = data.get("choices") or [{}]
    choice = choices[0] or {}
    delta = choice.get("delta") or {}

    parts = [Part(text=delta.get("content") or "")]
    if extra_parts:
        parts.extend(extra_parts)

    return StreamChunk(
        output=Turn(role="assistant", parts=parts),
        stop_reason=to_stop_reason(choice.get("finish_reason")),
        index=choice.get("index", 0) or 0,
    )


class ToolCallAccumulator:
    """
    Merges streamed `delta.tool_calls` fragments by index.

    Create one per stream; never share between concurrent streams.
    """

    def __init__(self):
        self._calls: dict[int, dict] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def add(self, tool_call_deltas: list[dict]) -> None:
        for tc in tool_call_deltas:
            idx = tc.get("index", 0)
            entry = self._calls.setdefault(idx, {"id": None, "name": "", "arguments": ""})
            if tc.get("id"):
                entry["id"] = tc["id"]
            func = tc.get("function") or {}
            if func.get("name"):
                entry["name"] = func["name"]
            arguments = func.get("arguments")
            if isinstance(arguments, dict):
                entry["arguments"] = json.dumps(arguments)
            elif arguments:
                entry["arguments"] += arguments

    def flush(self) -> list[Part]:
        """Return completed calls as function_call parts and reset."""
        parts = [
            Part(function_call=FunctionCall(
                id=entry["id"] or generate_call_id(),
                name=entry["name"],
                args=decode_arguments(entry["arguments"]),
            ))
            for _, entry in sorted(self._calls.items())
            if entry["name"]
        ]
        self._calls.clear()
        return parts


# ─────────────────────────────────────────────────────────────────────
# SSE DECODING
# ─────────────────────────────────────────────────────────────────────

async def _next_line(lines: AsyncIterator[str]) -> Optional[str]:
    try:
        return await lines.__anext__()
    except StopAsyncIteration:
        return None


async def iter_sse_chunks(
    provider: str,
    response: httpx.Response,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[dict]:
    """
    Yield each `data: ` JSON payload of a streaming response, in order.

    Stops at `data: [DONE]`. Lines that are not data lines, or whose
    payload is not a JSON object (or a list wrapping one), are skipped.
    """
    lines = response.aiter_lines()
    while True:
        line = await race_cancel(provider, _next_line(lines), cancel_event)
        if line is None:
            return
        if not line.startswith(SSE_DATA_PREFIX):
            continue
        data = line[len(SSE_DATA_PREFIX):].strip()
        if data == SSE_DONE:
            return
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"{provider}: skipping undecodable stream line: {data[:200]}")
            continue
        chunk = first_envelope(chunk)
        if chunk:
            yield chunk
