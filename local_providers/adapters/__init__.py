"""
Adapters for local LLM inference backends.

Provider-agnostic architecture: Protocol defines WHAT, implementations define HOW.
"""

from .base import (
    ModelProvider,
    ProviderError,
    ProviderRequestError,
    ProviderResponseError,
    RequestCancelledError,
    StreamingNotSupportedError,
)
from .huggingface import HuggingFaceAdapter
from .lmstudio import LMStudioAdapter
from .ollama import OllamaAdapter

__all__ = [
    "ModelProvider",
    "ProviderError",
    "ProviderRequestError",
    "ProviderResponseError",
    "RequestCancelledError",
    "StreamingNotSupportedError",
    "HuggingFaceAdapter",
    "LMStudioAdapter",
    "OllamaAdapter",
]
