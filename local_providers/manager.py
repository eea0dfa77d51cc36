"""
ProviderManager - owns the configured adapters and picks the active one.

Adapters are built once, from a name -> factory table, and keyed by name
for the manager's lifetime. Detection probes every adapter; selection
walks a fixed priority order and falls back to auto-detection when an
explicitly preferred backend is down.

Adding a backend means adding one factory entry and one priority slot;
the detection and selection control flow never names a concrete adapter.
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from local_providers.adapters.base import ModelProvider
from local_providers.adapters.huggingface import HuggingFaceAdapter
from local_providers.adapters.lmstudio import LMStudioAdapter
from local_providers.adapters.ollama import OllamaAdapter
from local_providers.adapters.schema import ModelInfo, ProviderDetectionResult
from local_providers.config import KNOWN_PREFERENCES, ProviderConfig

logger = logging.getLogger(__name__)


# Favor the backend most likely to support full tool calling and streaming.
PRIORITY_ORDER: tuple[str, ...] = ("ollama", "lmstudio", "huggingface")


# Registration order is detection-report order.
ADAPTER_FACTORIES: dict[str, Callable[[ProviderConfig], ModelProvider]] = {
    "ollama": lambda config: OllamaAdapter(
        endpoint=config.ollama.endpoint,
        default_model=config.ollama.default_model,
    ),
    "lmstudio": lambda config: LMStudioAdapter(
        endpoint=config.lmstudio.endpoint,
        context_window=config.lmstudio.context_window,
        default_model=config.lmstudio.default_model,
    ),
    "huggingface": lambda config: HuggingFaceAdapter(
        api_key=config.huggingface.api_key,
        default_model=config.huggingface.default_model,
        local_endpoint=config.huggingface.endpoint,
    ),
}


def _is_enabled(config: ProviderConfig, name: str) -> bool:
    settings = getattr(config, name, None)
    return getattr(settings, "enabled", True) is not False


class ProviderManager:
    """
    Detection and selection over the configured local providers.

    Holds no state beyond the immutable config and the adapter map.
    """

    def __init__(self, config: Optional[ProviderConfig] = None):
        self._config = config or ProviderConfig()
        self._providers: dict[str, ModelProvider] = {}

        for name, factory in ADAPTER_FACTORIES.items():
            if not _is_enabled(self._config, name):
                logger.debug(f"Provider '{name}' disabled in config")
                continue
            self._providers[name] = factory(self._config)

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def providers(self) -> Mapping[str, ModelProvider]:
        """Read-only view of configured adapters, in registration order."""
        return MappingProxyType(self._providers)

    def get_provider(self, name: str) -> Optional[ModelProvider]:
        """Direct lookup, no availability check."""
        return self._providers.get(name)

    async def _probe(self, name: str, provider: ModelProvider) -> bool:
        try:
            return bool(await provider.is_available())
        except Exception as e:
            logger.warning(f"Availability check for '{name}' raised: {e}")
            return False

    async def _detect_one(self, name: str, provider: ModelProvider) -> ProviderDetectionResult:
        available = await self._probe(name, provider)
        models: list[ModelInfo] = []
        if available:
            try:
                models = list(await provider.list_models())
            except Exception as e:
                logger.warning(f"Model listing for '{name}' raised: {e}")
                models = []
        return ProviderDetectionResult(
            name=name,
            endpoint=getattr(provider, "endpoint", None),
            available=available,
            models=models,
        )

    async def detect_providers(self) -> list[ProviderDetectionResult]:
        """
        Probe every configured provider concurrently.

        Always returns one result per configured provider, in registration
        order. Unreachable or failing providers are reported as unavailable.
        """
        tasks = [
            self._detect_one(name, provider)
            for name, provider in self._providers.items()
        ]
        return list(await asyncio.gather(*tasks))

    async def auto_detect_provider(self) -> Optional[ModelProvider]:
        """
        Return the first available provider in priority order.

        Returns None when nothing is reachable.
        """
        for name in PRIORITY_ORDER:
            provider = self._providers.get(name)
            if provider is not None and await self._probe(name, provider):
                logger.debug(f"Auto-detected provider '{name}'")
                return provider

        logger.info("No local provider available")
        return None

    async def get_active_provider(self) -> Optional[ModelProvider]:
        """
        Return the configured provider if reachable, else auto-detect.

        An explicit preference degrades to auto-selection rather than
        failing; None only when no configured provider is reachable.
        """
        preferred = self._config.preferred
        if preferred == "auto":
            return await self.auto_detect_provider()

        if preferred not in KNOWN_PREFERENCES:
            logger.warning(f"Unknown preferred provider '{preferred}', using auto-detection")
            return await self.auto_detect_provider()

        provider = self._providers.get(preferred)
        if provider is not None and await self._probe(preferred, provider):
            return provider

        logger.info(f"Preferred provider '{preferred}' unavailable, falling back to auto-detection")
        return await self.auto_detect_provider()
