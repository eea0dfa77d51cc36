"""
Recover tool calls that a backend emitted as plain text.

Ollama's OpenAI-compatible endpoint sometimes answers a tool-enabled
request with the call serialized into the message content instead of the
structured `tool_calls` field:

    {"name": "get_weather", "arguments": {"city": "Paris"}}

or the same object inside a ```json fenced block. This module turns that
text back into an OpenAI-shaped tool call.

The trigger is deliberately narrow: the whole (trimmed) content must be a
JSON object whose keys are exactly `name` and `arguments`. Anything else is
left alone so ordinary completions that happen to contain JSON survive.
"""

import json
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

FENCED_JSON_PATTERN = re.compile(r"^```(?:json)?[ \t]*\n(.*?)\n?[ \t]*```$", re.DOTALL)

TOOL_CALL_KEYS = frozenset({"name", "arguments"})


class ToolCallArgumentsError(ValueError):
    """Text looked like a tool call but its arguments are not a JSON object."""


@dataclass
class ParsedToolCall:
    """Represents a tool call recovered from completion text."""
    name: str
    arguments: dict[str, Any]

    def to_openai(self, call_id: Optional[str] = None) -> dict:
        """Render as an OpenAI `tool_calls` entry."""
        return {
            "id": call_id or generate_call_id(),
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments),
            },
        }


def generate_call_id() -> str:
    """Unique id for a synthesized tool call, e.g. call_1718000000000_3f9a2c1."""
    return f"call_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"


def _extract_json_text(content: str) -> Optional[str]:
    trimmed = content.strip()
    match = FENCED_JSON_PATTERN.match(trimmed)
    if match:
        return match.group(1).strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return trimmed
    return None


def _coerce_arguments(name: str, arguments: Any) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ToolCallArgumentsError(
                f"Arguments for tool call '{name}' are not valid JSON: {e}"
            ) from e
        if isinstance(decoded, dict):
            return decoded
    raise ToolCallArgumentsError(
        f"Arguments for tool call '{name}' must be a JSON object, "
        f"got {type(arguments).__name__}"
    )


def parse_tool_call_text(content: Optional[str]) -> Optional[ParsedToolCall]:
    """
    Parse a text-embedded tool call.

    Returns:
        ParsedToolCall if the content is exactly a {"name", "arguments"}
        object (optionally fenced), None otherwise.

    Raises:
        ToolCallArgumentsError: shape matched but arguments are not an object
    """
    if not content:
        return None

    json_text = _extract_json_text(content)
    if json_text is None:
        return None

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError:
        return None

    if not isinstance(data, dict) or set(data) != TOOL_CALL_KEYS:
        return None

    name = data["name"]
    if not isinstance(name, str) or not name:
        return None

    return ParsedToolCall(name=name, arguments=_coerce_arguments(name, data["arguments"]))


def parse_tool_call_from_text(content: Optional[str]) -> Optional[dict]:
    """
    Convenience wrapper returning an OpenAI `tool_calls` entry with a fresh id.

    Raises:
        ToolCallArgumentsError: see parse_tool_call_text
    """
    parsed = parse_tool_call_text(content)
    if parsed is None:
        return None
    return parsed.to_openai()
