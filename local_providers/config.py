"""
Configuration constants and Pydantic models for local-providers.
"""

import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from local_providers.adapters.huggingface import DEFAULT_HF_MODEL, DEFAULT_TGI_ENDPOINT
from local_providers.adapters.lmstudio import (
    DEFAULT_CONTEXT_WINDOW,
    DEFAULT_LMSTUDIO_ENDPOINT,
    DEFAULT_LMSTUDIO_MODEL,
)
from local_providers.adapters.ollama import DEFAULT_OLLAMA_ENDPOINT, DEFAULT_OLLAMA_MODEL


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_PREFERRED: str = "auto"

# Recognized values: auto, ollama, lmstudio, huggingface, cloud. Anything
# that names no configured provider falls back to auto-detection.
KNOWN_PREFERENCES = ("auto", "ollama", "lmstudio", "huggingface", "cloud")


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class _Settings(BaseModel):
    """
    Base for config blocks.

    Accepts snake_case or the camelCase keys used in settings.json
    (defaultModel, contextWindow, apiKey). Frozen after construction.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class OllamaSettings(_Settings):
    enabled: bool = True
    endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    default_model: str = DEFAULT_OLLAMA_MODEL


class LMStudioSettings(_Settings):
    enabled: bool = True
    endpoint: str = DEFAULT_LMSTUDIO_ENDPOINT
    default_model: str = DEFAULT_LMSTUDIO_MODEL
    context_window: int = DEFAULT_CONTEXT_WINDOW


class HuggingFaceSettings(_Settings):
    enabled: bool = True
    # Local TGI server, used only when no api_key is configured
    endpoint: str = DEFAULT_TGI_ENDPOINT
    default_model: str = DEFAULT_HF_MODEL
    api_key: Optional[str] = None


class CloudSettings(_Settings):
    enabled: bool = True


class ProviderConfig(_Settings):
    """Provider selection policy plus per-backend settings."""
    preferred: str = DEFAULT_PREFERRED
    ollama: OllamaSettings = Field(default_factory=OllamaSettings)
    lmstudio: LMStudioSettings = Field(default_factory=LMStudioSettings)
    huggingface: HuggingFaceSettings = Field(default_factory=HuggingFaceSettings)
    cloud: CloudSettings = Field(default_factory=CloudSettings)

    @classmethod
    def from_settings(cls, settings: Optional[dict[str, Any]]) -> "ProviderConfig":
        """
        Build from a settings dict.

        Accepts either the `providers` block itself or a whole settings
        document containing one. Missing fields get documented defaults.
        """
        if not settings:
            return cls()
        block = settings.get("providers", settings)
        return cls.model_validate(block or {})


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def _env_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _env_str(key: str, default: Optional[str]) -> Optional[str]:
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def get_preferred_provider() -> str:
    """
    Get the preferred provider from environment or default.

    Set LOCAL_PROVIDER_PREFERRED in .env (default: auto).
    """
    return _env_str("LOCAL_PROVIDER_PREFERRED", DEFAULT_PREFERRED)


def get_hf_token() -> Optional[str]:
    """Get HuggingFace token from environment."""
    return _env_str("HF_TOKEN", None)


def load_config_from_env() -> ProviderConfig:
    """
    Build a ProviderConfig from environment variables.

    Recognized: LOCAL_PROVIDER_PREFERRED, OLLAMA_{ENABLED,ENDPOINT,MODEL},
    LMSTUDIO_{ENABLED,ENDPOINT,MODEL,CONTEXT_WINDOW},
    HF_{ENABLED,ENDPOINT,MODEL}, HF_TOKEN.
    """
    return ProviderConfig(
        preferred=get_preferred_provider(),
        ollama=OllamaSettings(
            enabled=_env_bool("OLLAMA_ENABLED", True),
            endpoint=_env_str("OLLAMA_ENDPOINT", DEFAULT_OLLAMA_ENDPOINT),
            default_model=_env_str("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
        ),
        lmstudio=LMStudioSettings(
            enabled=_env_bool("LMSTUDIO_ENABLED", True),
            endpoint=_env_str("LMSTUDIO_ENDPOINT", DEFAULT_LMSTUDIO_ENDPOINT),
            default_model=_env_str("LMSTUDIO_MODEL", DEFAULT_LMSTUDIO_MODEL),
            context_window=_env_int("LMSTUDIO_CONTEXT_WINDOW", DEFAULT_CONTEXT_WINDOW),
        ),
        huggingface=HuggingFaceSettings(
            enabled=_env_bool("HF_ENABLED", True),
            endpoint=_env_str("HF_ENDPOINT", DEFAULT_TGI_ENDPOINT),
            default_model=_env_str("HF_MODEL", DEFAULT_HF_MODEL),
            api_key=get_hf_token(),
        ),
    )
