"""
ModelProvider Protocol - defines the contract for local inference backends.

This is the WHAT (interface), not the HOW (implementation).
See ollama.py, lmstudio.py and huggingface.py for concrete implementations.
"""

from typing import AsyncIterator, Optional, Protocol

from local_providers.adapters.schema import (
    GenerationResponse,
    ModelInfo,
    RequestOptions,
    StreamChunk,
    Turn,
)

# Ceiling for availability probes, independent of any caller timeout.
PROBE_TIMEOUT_SECONDS: float = 2.0


class ProviderError(Exception):
    """Base class for errors raised by provider adapters."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class ProviderRequestError(ProviderError):
    """
    Backend rejected the request or the transport failed mid-request.

    The message includes the backend's own status text so the UI can
    show it verbatim.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
    ):
        super().__init__(provider, message)
        self.status_code = status_code
        self.status_text = status_text


class ProviderResponseError(ProviderError):
    """Backend answered, but the payload could not be decoded."""


class StreamingNotSupportedError(ProviderError):
    """Raised by adapters whose backend has no streaming endpoint."""


class RequestCancelledError(ProviderError):
    """The caller's cancel_event fired while the request was in flight."""


class ModelProvider(Protocol):
    """
    Contract for local LLM backends.

    Capability flags are static declarations, not probed.

    Design rationale:
    - Separation of Concerns: Protocol defines capability, adapters define implementation
    - Provider-Agnostic: ProviderManager never branches on the concrete adapter type
    """

    name: str
    supports_streaming: bool
    supports_vision: bool

    @property
    def endpoint(self) -> Optional[str]:
        """Base URL reported in detection results."""
        ...

    async def is_available(self) -> bool:
        """
        Bounded-time reachability check.

        Returns False on network error, non-success status or timeout.
        Never raises.
        """
        ...

    async def list_models(self) -> list[ModelInfo]:
        """
        Return models currently exposed by the backend.

        Best effort: returns [] on any failure.
        """
        ...

    async def send_request(
        self, conversation: list[Turn], options: RequestOptions
    ) -> GenerationResponse:
        """
        One blocking round trip.

        Raises:
            ProviderRequestError: backend returned a non-success status
            ProviderResponseError: response body could not be decoded
            RequestCancelledError: options.cancel_event was set
        """
        ...

    def send_stream_request(
        self, conversation: list[Turn], options: RequestOptions
    ) -> AsyncIterator[StreamChunk]:
        """
        Lazy, finite, non-restartable stream of chunks.

        Callers must drain it or close it (break out of `async for`,
        or `aclose()`); the connection is released on every exit path.
        """
        ...
