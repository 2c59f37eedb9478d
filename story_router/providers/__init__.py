"""Provider implementations for the story router."""
from __future__ import annotations

from .anthropic_provider import AnthropicProvider
from .base import BaseProvider, ProviderError
from .cowriter_provider import CowriterProvider
from .factory import ProviderFactory, default_factory
from .gemini_provider import GeminiProvider
from .local_provider import LocalProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "CowriterProvider",
    "GeminiProvider",
    "LocalProvider",
    "OpenAIProvider",
    "ProviderError",
    "ProviderFactory",
    "default_factory",
]
