"""
Generic conversation and response types shared by every provider adapter.

Adapters translate between these and their backend's wire format, so the
rest of the application talks in one vocabulary regardless of whether the
backend is Ollama, LM Studio or a text-generation server.
"""

import asyncio
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Applied when a request leaves these unset
DEFAULT_TEMPERATURE: float = 0.7
DEFAULT_TIMEOUT_SECONDS: float = 300.0  # 5 minutes


class FunctionCall(BaseModel):
    """A structured tool invocation emitted by the model."""
    id: Optional[str] = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResult(BaseModel):
    """The caller's answer to a FunctionCall."""
    id: Optional[str] = None
    name: str
    response: dict[str, Any] = Field(default_factory=dict)


class Part(BaseModel):
    """
    One piece of a conversation turn.

    Exactly one of text, function_call or function_result is set.
    """
    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    function_result: Optional[FunctionResult] = None

    @model_validator(mode="after")
    def _exactly_one_kind(self) -> "Part":
        populated = [
            value for value in (self.text, self.function_call, self.function_result)
            if value is not None
        ]
        if len(populated) != 1:
            raise ValueError(
                "Part must carry exactly one of text, function_call, function_result"
            )
        return self


class Turn(BaseModel):
    """A single conversation turn. Ordering within a conversation is chronological."""
    role: Literal["user", "assistant"]
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role="user", parts=[Part(text=text)])

    @classmethod
    def assistant(cls, text: str) -> "Turn":
        return cls(role="assistant", parts=[Part(text=text)])

    def get_text(self) -> str:
        """Concatenate the text parts (function parts are skipped)."""
        return "".join(p.text for p in self.parts if p.text is not None)


class RequestOptions(BaseModel):
    """
    Per-request generation parameters.

    Together with the conversation passed alongside it, this is the full
    generation request. Immutable once built.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False
    tools: Optional[list[dict[str, Any]]] = None
    system_prompt: Optional[str] = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    # Setting this aborts the in-flight HTTP call (and closes a stream).
    cancel_event: Optional[asyncio.Event] = None


class StopReason(str, Enum):
    STOP = "stop"
    OTHER = "other"


class GenerationResponse(BaseModel):
    """
    Response from a non-streaming request.

    Exactly one output turn; no multi-candidate sampling.
    """
    output: Turn
    stop_reason: Optional[StopReason] = None
    index: int = 0

    @property
    def text(self) -> str:
        return self.output.get_text()

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [p.function_call for p in self.output.parts if p.function_call is not None]


class StreamChunk(GenerationResponse):
    """
    One incremental delta of a streamed response.

    stop_reason stays None until the terminal chunk.
    """


class ModelInfo(BaseModel):
    """Model descriptor derived from a live backend query (never persisted)."""
    id: str
    display_name: str
    context_window: Optional[int] = None
    supports_streaming: bool = False
    supports_vision: bool = False


class ProviderDetectionResult(BaseModel):
    """Outcome of probing one provider during a detection pass."""
    name: str
    endpoint: Optional[str] = None
    available: bool
    models: list[ModelInfo] = Field(default_factory=list)
