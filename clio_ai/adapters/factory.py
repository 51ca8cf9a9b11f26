# adapters/factory.py
from __future__ import annotations

from typing import Any, Dict

from loguru import logger

from clio_ai.adapters.base import ProviderAdapter
from clio_ai.adapters.gemini import GeminiAdapter
from clio_ai.adapters.ollama import OllamaAdapter
from clio_ai.adapters.openai_compat import GroqAdapter
from clio_ai.config_home import Settings
from clio_ai.models import ModelSpec, Provider


def build_adapter(provider: Provider, settings: Settings, *, http: Any = None) -> ProviderAdapter:
    """Construct the adapter variant for `provider`. Missing keys surface on first call."""
    if provider is Provider.GEMINI:
        return GeminiAdapter(settings.gemini_api_key, http=http)
    if provider is Provider.GROQ:
        return GroqAdapter(settings.groq_api_key, http=http)
    if provider is Provider.OLLAMA:
        return OllamaAdapter(settings.ollama_url, http=http)
    raise ValueError(f"Unknown provider: {provider}")


class AdapterFactory:
    """Callable ModelSpec → adapter, one cached instance per provider."""

    def __init__(self, settings: Settings, *, http: Any = None):
        self.settings = settings
        self.http = http
        self._cache: Dict[Provider, ProviderAdapter] = {}

    def __call__(self, spec: ModelSpec) -> ProviderAdapter:
        adapter = self._cache.get(spec.provider)
        if adapter is None:
            adapter = build_adapter(spec.provider, self.settings, http=self.http)
            self._cache[spec.provider] = adapter
            logger.debug("AdapterFactory: built {} for '{}'", type(adapter).__name__, spec.id)
        return adapter
