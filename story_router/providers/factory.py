"""Builds provider instances from configuration entries."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple, Type

from ..config import ProviderDefinition
from ..errors import UnknownProviderTypeError
from ..models import ProviderType
from .anthropic_provider import AnthropicProvider
from .base import BaseProvider
from .cowriter_provider import CowriterProvider
from .gemini_provider import GeminiProvider
from .local_provider import LocalProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

# Key used when no backend-specific class is registered for a name.
DEFAULT_KEY = "*"


class ProviderFactory:
    """Maps (provider type, backend name) to a provider class."""

    def __init__(self) -> None:
        self._classes: Dict[Tuple[ProviderType, str], Type[BaseProvider]] = {}

    def register(self, provider_type: ProviderType | str, key: str, provider_class: Type[BaseProvider]) -> None:
        self._classes[(ProviderType(provider_type), key.lower())] = provider_class

    def resolve(self, definition: ProviderDefinition) -> Type[BaseProvider]:
        try:
            provider_type = ProviderType(definition.type)
        except ValueError as exc:
            raise UnknownProviderTypeError(str(definition.type), definition.name) from exc
        backend = str(definition.config.get("backend") or definition.name).lower()
        provider_class = self._classes.get((provider_type, backend)) or self._classes.get((provider_type, DEFAULT_KEY))
        if provider_class is None:
            raise UnknownProviderTypeError(f"{provider_type.value}/{backend}", definition.name)
        return provider_class

    def create(self, definition: ProviderDefinition) -> BaseProvider:
        provider_class = self.resolve(definition)
        logger.debug("Creating %s for %s", provider_class.__name__, definition.name)
        return provider_class(definition.name, definition.priority)


def default_factory(extra: Optional[Dict[Tuple[str, str], Type[BaseProvider]]] = None) -> ProviderFactory:
    factory = ProviderFactory()
    factory.register(ProviderType.COWRITER, DEFAULT_KEY, CowriterProvider)
    factory.register(ProviderType.LOCAL, DEFAULT_KEY, LocalProvider)
    for backend in ("openai", "openrouter", "mistral", "moonshot", "kimi"):
        factory.register(ProviderType.CLOUD, backend, OpenAIProvider)
    factory.register(ProviderType.CLOUD, "anthropic", AnthropicProvider)
    factory.register(ProviderType.CLOUD, "gemini", GeminiProvider)
    for (provider_type, key), provider_class in (extra or {}).items():
        factory.register(provider_type, key, provider_class)
    return factory
