"""
LMStudioAdapter - OpenAI-compatible server implementation of ModelProvider.

LM Studio serves /v1/models and /v1/chat/completions. It does not report a
context window per model, so the configured value is attached to every
listed model.
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional

import httpx

from local_providers.adapters._http import open_stream, race_cancel, request_error
from local_providers.adapters._openai import (
    build_payload,
    chunk_to_stream_chunk,
    completion_to_response,
    first_envelope,
    iter_sse_chunks,
    to_text_messages,
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
    StreamChunk,
    Turn,
)

logger = logging.getLogger(__name__)

DEFAULT_LMSTUDIO_ENDPOINT = "http://127.0.0.1:1234"
DEFAULT_LMSTUDIO_MODEL = "qwen3-coder-30b"
DEFAULT_CONTEXT_WINDOW = 262144
LIST_MODELS_TIMEOUT_SECONDS = 10.0


class LMStudioAdapter:
    """
    LM Studio implementation of ModelProvider.

    Text only: function-call and function-result parts are flattened into
    the message text, and tool definitions are not forwarded.
    """

    name = "lmstudio"
    supports_streaming = True
    supports_vision = False

    def __init__(
        self,
        endpoint: str = DEFAULT_LMSTUDIO_ENDPOINT,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        default_model: Optional[str] = None,
    ):
        self._endpoint = endpoint.rstrip("/")
        self._context_window = context_window
        self._default_model = default_model

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def context_window(self) -> int:
        return self._context_window

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=PROBE_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{self._endpoint}/v1/models")
                return response.is_success
        except Exception as e:
            logger.debug(f"LM Studio probe failed at {self._endpoint}: {e}")
            return False

    async def list_models(self) -> list[ModelInfo]:
        try:
            async with httpx.AsyncClient(timeout=LIST_MODELS_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{self._endpoint}/v1/models")
                response.raise_for_status()
                data = response.json()
            # LM Studio returns {"data": [{"id": "model-name", "object": "model", ...}, ...]}
            return [
                ModelInfo(
                    id=model["id"],
                    display_name=model["id"],
                    context_window=self._context_window,
                    supports_streaming=True,
                    supports_vision=False,
                )
                for model in first_envelope(data).get("data", [])
            ]
        except Exception as e:
            logger.warning(f"Error listing LM Studio models: {e}")
            return []

    def build_messages(self, conversation: list[Turn], options: RequestOptions) -> list[dict]:
        messages = to_text_messages(conversation)
        if options.system_prompt:
            messages.insert(0, {"role": "system", "content": options.system_prompt})
        return messages

    def _payload(self, conversation: list[Turn], options: RequestOptions, stream: bool) -> dict:
        return build_payload(
            model=self._default_model,
            messages=self.build_messages(conversation, options),
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            stream=stream,
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
            raise ProviderRequestError(self.name, f"LM Studio request failed: {e}") from e

        if not response.is_success:
            raise request_error(self.name, "LM Studio", response, response.content)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.name, f"LM Studio returned invalid JSON: {e}") from e

        return completion_to_response(data)

    async def send_stream_request(
        self, conversation: list[Turn], options: RequestOptions
    ) -> AsyncIterator[StreamChunk]:
        """Stream chunks from LM Studio, one per decoded `data:` line."""
        payload = self._payload(conversation, options, stream=True)

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
                        error_body = await response.aread()
                        raise request_error(self.name, "LM Studio", response, error_body)

                    chunks = iter_sse_chunks(self.name, response, options.cancel_event)
                    async with aclosing(chunks):
                        async for data in chunks:
                            yield chunk_to_stream_chunk(data)
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.name, f"LM Studio stream failed: {e}") from e
