"""Routing layer that sends creative-writing requests to the best available AI provider."""
from __future__ import annotations

from .config import JsonRouterConfig, ProviderDefinition, RouterConfig, RoutingSettings, ScoringWeights
from .engine import AIEngine, EngineState
from .errors import (
    AllProvidersFailedError,
    ConfigurationError,
    DuplicateProviderError,
    EngineNotInitializedError,
    NoSuitableProviderError,
    ProviderExecutionError,
    ProviderInitializationError,
    RouterError,
    UnknownProviderTypeError,
)
from .events import EventBus
from .models import (
    Capability,
    HealthStatus,
    ProviderMetadata,
    ProviderStatus,
    ProviderType,
    Recommendation,
    RequestOptions,
    RequestType,
    Response,
    ResponseMetadata,
    RoutingRequest,
    StoryContext,
)
from .registry import ProviderRegistry
from .router import Router

__version__ = "0.1.0"

__all__ = [
    "AIEngine",
    "AllProvidersFailedError",
    "Capability",
    "ConfigurationError",
    "DuplicateProviderError",
    "EngineNotInitializedError",
    "EngineState",
    "EventBus",
    "HealthStatus",
    "JsonRouterConfig",
    "NoSuitableProviderError",
    "ProviderDefinition",
    "ProviderExecutionError",
    "ProviderInitializationError",
    "ProviderMetadata",
    "ProviderRegistry",
    "ProviderStatus",
    "ProviderType",
    "Recommendation",
    "RequestOptions",
    "RequestType",
    "Response",
    "ResponseMetadata",
    "Router",
    "RouterConfig",
    "RouterError",
    "RoutingRequest",
    "RoutingSettings",
    "ScoringWeights",
    "StoryContext",
    "UnknownProviderTypeError",
]
