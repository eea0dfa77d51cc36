"""
OllamaAdapter - chat-server implementation of ModelProvider.

Talks to Ollama's OpenAI-compatible /v1/chat/completions endpoint, with
full tool calling. Discovery uses Ollama's native /api/tags.

Key differences from LMStudioAdapter:
- Tool definitions are forwarded (normalized to OpenAI function tools)
- Text-embedded tool calls are repaired into structured calls
- Streamed tool-call fragments are accumulated per stream
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator

import httpx

from local_providers.adapters._http import open_stream, race_cancel, request_error
from local_providers.adapters._openai import (
    ToolCallAccumulator,
    build_payload,
    chunk_to_stream_chunk,
    completion_to_response,
    first_envelope,
    iter_sse_chunks,
    to_openai_messages,
)
from local_providers.adapters.base import (
    PROBE_TIMEOUT_SECONDS,
    ProviderRequestError,
    ProviderResponseError,
)
from local_providers.adapters.schema import (
    GenerationResponse,
    ModelInfo,
    RequestOptions,
    StopReason,
    StreamChunk,
    Turn,
)
from local_providers.tool_parsers import ToolCallArgumentsError, parse_tool_call_from_text

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "qwen2.5-coder:7b"
LIST_MODELS_TIMEOUT_SECONDS = 10.0

VISION_NAME_MARKERS = ("vision", "llava")


def is_vision_model(name: str) -> bool:
    return any(marker in name for marker in VISION_NAME_MARKERS)


class OllamaAdapter:
    """
    Ollama implementation of ModelProvider.

    Stateless across requests: the only per-request state (the streamed
    tool-call accumulator) lives inside each send_stream_request call.
    """

    name = "ollama"
    supports_streaming = True
    supports_vision = False  # per-model, see list_models()

    def __init__(
        self,
        endpoint: str = DEFAULT_OLLAMA_ENDPOINT,
        default_model: str = DEFAULT_OLLAMA_MODEL,
    ):
        self._endpoint = endpoint.rstrip("/")
        self._default_model = default_model

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def default_model(self) -> str:
        return self._default_model

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=PROBE_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{self._endpoint}/api/tags")
                return response.is_success
        except Exception as e:
            logger.debug(f"Ollama probe failed at {self._endpoint}: {e}")
            return False

    async def list_models(self) -> list[ModelInfo]:
        try:
            async with httpx.AsyncClient(timeout=LIST_MODELS_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{self._endpoint}/api/tags")
                response.raise_for_status()
                data = response.json()
            # Ollama returns {"models": [{"name": "qwen2.5-coder:7b", "size": ...}, ...]}
            return [
                ModelInfo(
                    id=model["name"],
                    display_name=model["name"],
                    supports_streaming=True,
                    supports_vision=is_vision_model(model["name"]),
                )
                for model in first_envelope(data).get("models", [])
            ]
        except Exception as e:
            logger.warning(f"Error listing Ollama models: {e}")
            return []

    def build_messages(self, conversation: list[Turn], options: RequestOptions) -> list[dict]:
        return to_openai_messages(conversation, system_prompt=options.system_prompt)

    def _payload(self, conversation: list[Turn], options: RequestOptions, stream: bool) -> dict:
        return build_payload(
            model=self._default_model,
            messages=self.build_messages(conversation, options),
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            stream=stream,
            tools=options.tools,
        )

    async def send_request(
        self, conversation: list[Turn], options: RequestOptions
    ) -> GenerationResponse:
        payload = self._payload(conversation, options, stream=False)

        try:
            async with httpx.AsyncClient(timeout=options.timeout_seconds) as client:
                response = await race_cancel(
                    self.name,
                    client.post(f"{self._endpoint}/v1/chat/completions", json=payload),
                    options.cancel_event,
                )
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.name, f"Ollama request failed: {e}") from e

        if not response.is_success:
            raise request_error(self.name, "Ollama", response, response.content)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.name, f"Ollama returned invalid JSON: {e}") from e

        self._repair_text_tool_call(data)
        return completion_to_response(data)

    def _repair_text_tool_call(self, data) -> None:
        """
        Ollama workaround: move a tool call written into the content
        into the structured tool_calls field.
        """
        envelope = first_envelope(data)
        choices = envelope.get("choices") or []
        if not choices:
            return
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not content or message.get("tool_calls"):
            return

        try:
            tool_call = parse_tool_call_from_text(content)
        except ToolCallArgumentsError as e:
            raise ProviderResponseError(self.name, f"Ollama tool call could not be decoded: {e}") from e

        if tool_call is not None:
            logger.debug(f"Recovered text-embedded tool call '{tool_call['function']['name']}'")
            message["tool_calls"] = [tool_call]
            message["content"] = None

    async def send_stream_request(
        self, conversation: list[Turn], options: RequestOptions
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream chunks from Ollama.

        One chunk per decoded `data:` line. Tool-call fragments are merged
        and attached to the chunk that carries the finish_reason.
        """
        payload = self._payload(conversation, options, stream=True)
        tool_calls = ToolCallAccumulator()

        try:
            async with httpx.AsyncClient(timeout=options.timeout_seconds) as client:
                async with open_stream(
                    self.name,
                    client,
                    f"{self._endpoint}/v1/chat/completions",
                    options.cancel_event,
                    json=payload,
                ) as response:
                    if not response.is_success:
                        # Read the error body for streaming responses
                        error_body = await response.aread()
                        raise request_error(self.name, "Ollama", response, error_body)

                    chunks = iter_sse_chunks(self.name, response, options.cancel_event)
                    async with aclosing(chunks):
                        async for data in chunks:
                            choices = data.get("choices") or [{}]
                            choice = choices[0] or {}
                            delta = choice.get("delta") or {}
                            tool_calls.add(delta.get("tool_calls") or [])

                            finished = choice.get("finish_reason") is not None
                            extra = tool_calls.flush() if finished and tool_calls else None
                            yield chunk_to_stream_chunk(data, extra)
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.name, f"Ollama stream failed: {e}") from e

        # Stream ended without a finish_reason but calls are pending
        if tool_calls:
            leftover = StreamChunk(
                output=Turn(role="assistant", parts=tool_calls.flush()),
                stop_reason=StopReason.STOP,
            )
            yield leftover
