"""
HuggingFace text-generation adapter.

Implements ModelProvider for two deployments of the same `generate` API:
- the hosted HuggingFace Inference API (bearer token required)
- a local text-generation-inference (TGI) server (no token)

Key differences from the OpenAI-shaped adapters:
- No discovery endpoint: models come from a static catalog
- No streaming: send_stream_request fails before yielding
- Raw text in: the conversation is flattened into one ChatML prompt
"""

import logging
from typing import AsyncIterator, Optional

import httpx

from local_providers.adapters._http import race_cancel, request_error
from local_providers.adapters._openai import to_text_messages
from local_providers.adapters.base import (
    PROBE_TIMEOUT_SECONDS,
    ProviderRequestError,
    ProviderResponseError,
    StreamingNotSupportedError,
)
from local_providers.adapters.schema import (
    DEFAULT_TEMPERATURE,
    GenerationResponse,
    ModelInfo,
    Part,
    RequestOptions,
    StopReason,
    StreamChunk,
    Turn,
)

logger = logging.getLogger(__name__)

HF_INFERENCE_API_URL = "https://api-inference.huggingface.co"
DEFAULT_TGI_ENDPOINT = "http://localhost:8080"
DEFAULT_HF_MODEL = "Qwen/Qwen2.5-Coder-7B-Instruct"
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."
DEFAULT_MAX_NEW_TOKENS = 2048

# Qwen models known to work with the generate API.
# The backend has no list endpoint, so this is what list_models() reports.
HF_MODEL_CATALOG: list[ModelInfo] = [
    ModelInfo(id="Qwen/Qwen2.5-Coder-7B-Instruct", display_name="Qwen2.5-Coder-7B-Instruct", context_window=32768),
    ModelInfo(id="Qwen/Qwen2.5-Coder-14B-Instruct", display_name="Qwen2.5-Coder-14B-Instruct", context_window=32768),
    ModelInfo(id="Qwen/Qwen2.5-Coder-32B-Instruct", display_name="Qwen2.5-Coder-32B-Instruct", context_window=32768),
    ModelInfo(id="Qwen/Qwen3-Coder-30B-A3B-Instruct", display_name="Qwen3-Coder-30B-A3B-Instruct", context_window=131072),
]


def format_chatml_prompt(messages: list[dict], system_prompt: Optional[str] = None) -> str:
    """
    Format messages with Qwen's ChatML template.

    <|im_start|>system
    You are a helpful AI assistant.<|im_end|>
    <|im_start|>user
    Hi<|im_end|>
    <|im_start|>assistant
    """
    prompt = f"<|im_start|>system\n{system_prompt or DEFAULT_SYSTEM_PROMPT}<|im_end|>\n"
    for msg in messages:
        role = "assistant" if msg["role"] == "assistant" else "user"
        prompt += f"<|im_start|>{role}\n{msg['content']}<|im_end|>\n"
    prompt += "<|im_start|>assistant\n"
    return prompt


class HuggingFaceAdapter:
    """
    HuggingFace implementation of ModelProvider.

    Design decisions:
    - Hosted vs. local is decided once, at construction, from the token
    - Token present: assumed reachable (cloud API, errors occur at call time)
    - No token: probe the local TGI /health endpoint

    Usage:
        adapter = HuggingFaceAdapter(api_key="hf_xxx")   # hosted
        adapter = HuggingFaceAdapter()                   # local TGI
    """

    name = "huggingface"
    supports_streaming = False
    supports_vision = False

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = DEFAULT_HF_MODEL,
        local_endpoint: str = DEFAULT_TGI_ENDPOINT,
    ):
        self._api_key = api_key or None
        self._default_model = default_model
        self._local_endpoint = local_endpoint.rstrip("/")

        if self._api_key:
            self._generate_url = f"{HF_INFERENCE_API_URL}/models/{self._default_model}"
            self._headers = {
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            }
        else:
            self._generate_url = f"{self._local_endpoint}/generate"
            self._headers = {"Content-Type": "application/json"}

    @property
    def hosted(self) -> bool:
        return self._api_key is not None

    @property
    def endpoint(self) -> str:
        return HF_INFERENCE_API_URL if self.hosted else self._local_endpoint

    @property
    def generate_url(self) -> str:
        return self._generate_url

    async def is_available(self) -> bool:
        if self.hosted:
            return True

        try:
            async with httpx.AsyncClient(timeout=PROBE_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{self._local_endpoint}/health")
                return response.is_success
        except Exception as e:
            logger.debug(f"TGI probe failed at {self._local_endpoint}: {e}")
            return False

    async def list_models(self) -> list[ModelInfo]:
        """
        Return the static model catalog.

        Note: HuggingFace has no discovery endpoint for this API.
        """
        return [model.model_copy() for model in HF_MODEL_CATALOG]

    def build_messages(self, conversation: list[Turn], options: RequestOptions) -> list[dict]:
        return to_text_messages(conversation)

    def build_prompt(self, conversation: list[Turn], options: RequestOptions) -> str:
        return format_chatml_prompt(
            self.build_messages(conversation, options),
            system_prompt=options.system_prompt,
        )

    async def send_request(
        self, conversation: list[Turn], options: RequestOptions
    ) -> GenerationResponse:
        payload = {
            "inputs": self.build_prompt(conversation, options),
            "parameters": {
                "temperature": DEFAULT_TEMPERATURE if options.temperature is None else options.temperature,
                "max_new_tokens": options.max_tokens or DEFAULT_MAX_NEW_TOKENS,
                "return_full_text": False,
            },
        }

        try:
            async with httpx.AsyncClient(timeout=options.timeout_seconds) as client:
                response = await race_cancel(
                    self.name,
                    client.post(self._generate_url, json=payload, headers=self._headers),
                    options.cancel_event,
                )
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.name, f"HuggingFace request failed: {e}") from e

        if not response.is_success:
            raise request_error(self.name, "HuggingFace", response, response.content)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.name, f"HuggingFace returned invalid JSON: {e}") from e

        # Hosted API returns [{"generated_text": ...}], TGI returns {"generated_text": ...}
        if isinstance(data, list):
            data = data[0] if data else {}
        generated_text = data.get("generated_text") if isinstance(data, dict) else None

        return GenerationResponse(
            output=Turn(role="assistant", parts=[Part(text=generated_text or "")]),
            stop_reason=StopReason.STOP,
        )

    async def send_stream_request(
        self, conversation: list[Turn], options: RequestOptions
    ) -> AsyncIterator[StreamChunk]:
        raise StreamingNotSupportedError(
            self.name, "Streaming not supported for HuggingFace provider"
        )
        yield  # pragma: no cover - makes this an async generator
