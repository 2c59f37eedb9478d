"""Lifecycle facade over the registry and router."""
from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .config import ProviderDefinition, RouterConfig
from .errors import (
    DuplicateProviderError,
    EngineNotInitializedError,
    ProviderInitializationError,
    RouterError,
)
from .events import PROVIDER_ADDED, PROVIDER_REMOVED, REQUEST_COMPLETED, REQUEST_FAILED, EventBus
from .metrics import MetricsStore
from .models import (
    HealthStatus,
    ProviderType,
    Recommendation,
    RequestOptions,
    RequestType,
    Response,
    RoutingRequest,
    StoryContext,
)
from .providers.base import BaseProvider
from .providers.factory import ProviderFactory, default_factory
from .registry import ProviderRegistry
from .router import Router

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    SHUTDOWN = "shutdown"


class AIEngine:
    """Entry point for callers: loads providers, routes requests, publishes events.

    The event bus is passed in so callers (and tests) can observe
    ``provider-added``, ``provider-removed``, ``request-completed`` and
    ``request-failed`` without a global emitter.
    """

    def __init__(
        self,
        config: RouterConfig,
        events: Optional[EventBus] = None,
        factory: Optional[ProviderFactory] = None,
    ) -> None:
        self.config = config
        self.events = events if events is not None else EventBus()
        self.factory = factory or default_factory()
        self.registry = ProviderRegistry()
        self.metrics = MetricsStore()
        self.router = Router(self.registry, config, self.metrics)
        self.state = EngineState.UNINITIALIZED
        self._lifecycle_lock = asyncio.Lock()
        self.registry.add_removal_listener(self._on_provider_removed)

    def _on_provider_removed(self, provider: BaseProvider) -> None:
        self.events.emit(PROVIDER_REMOVED, provider.id)

    def _ensure_ready(self) -> None:
        if self.state is not EngineState.READY:
            raise EngineNotInitializedError(self.state.value)

    async def initialize(self) -> None:
        async with self._lifecycle_lock:
            if self.state is EngineState.READY:
                return
            self.state = EngineState.INITIALIZING
            for definition in self.config.get_enabled_providers():
                try:
                    await self._load_provider(definition)
                except RouterError as exc:
                    logger.error("Skipping provider %s: %s", definition.name, exc)
            self.state = EngineState.READY
        logger.info("AI engine initialized with %d providers", len(self.registry))

    async def _load_provider(self, definition: ProviderDefinition) -> BaseProvider:
        try:
            provider = self.factory.create(definition)
        except RouterError:
            raise
        except Exception as exc:
            raise ProviderInitializationError(definition.name, exc) from exc
        await self._start_provider(provider, definition.config)
        return provider

    async def _start_provider(self, provider: BaseProvider, config: Mapping[str, Any]) -> None:
        try:
            await provider.initialize(config)
        except Exception as exc:
            await self._shutdown_quietly(provider)
            raise ProviderInitializationError(provider.name, exc) from exc
        try:
            self.registry.register(provider)
        except DuplicateProviderError:
            await self._shutdown_quietly(provider)
            raise
        self.events.emit(PROVIDER_ADDED, provider)

    async def _shutdown_quietly(self, provider: BaseProvider) -> None:
        try:
            await provider.shutdown()
        except Exception:
            logger.exception("Error shutting down provider %s", provider.name)

    async def shutdown(self) -> None:
        async with self._lifecycle_lock:
            if self.state in (EngineState.SHUTDOWN, EngineState.UNINITIALIZED):
                self.state = EngineState.SHUTDOWN
                return
            self.state = EngineState.SHUTTING_DOWN
            providers = self.registry.clear()
            await asyncio.gather(*(self._shutdown_quietly(provider) for provider in providers))
            self.metrics.clear()
            self.state = EngineState.SHUTDOWN
        logger.info("AI engine shutdown complete")

    # Provider management

    async def register_provider(self, provider: BaseProvider, config: Optional[Mapping[str, Any]] = None) -> None:
        self._ensure_ready()
        await self._start_provider(provider, config or {})

    async def remove_provider(self, name: str) -> bool:
        self._ensure_ready()
        provider = self.registry.get_provider(name)
        if provider is None or not self.registry.unregister(name):
            return False
        await self._shutdown_quietly(provider)
        return True

    def set_provider_priority(self, name: str, priority: int) -> bool:
        self._ensure_ready()
        provider = self.registry.get_provider(name)
        if provider is None:
            return False
        provider.priority = priority
        logger.info("Updated priority for provider %s: %d", name, priority)
        return True

    # Routing

    async def route_request(self, request: RoutingRequest) -> Response:
        self._ensure_ready()
        try:
            response, provider = await self.router.dispatch(request)
        except Exception as exc:
            self.events.emit(REQUEST_FAILED, request, exc)
            raise
        self.events.emit(REQUEST_COMPLETED, request, response, provider)
        return response

    async def _route(
        self,
        request_type: RequestType,
        content: str,
        context: Optional[StoryContext] = None,
        **options: Any,
    ) -> Response:
        self._ensure_ready()
        request = RoutingRequest(
            type=request_type,
            content=content,
            context=context or StoryContext(),
            options=RequestOptions(**options),
        )
        return await self.route_request(request)

    async def generate_text(self, prompt: str, context: Optional[StoryContext] = None, **options: Any) -> Response:
        return await self._route(RequestType.PROSE_GENERATION, prompt, context, **options)

    async def analyze_story(self, content: str, **options: Any) -> Dict[str, Any]:
        response = await self._route(RequestType.STORY_ANALYSIS, content, **options)
        return response.data or {}

    async def generate_character(self, traits: Mapping[str, Any], **options: Any) -> Dict[str, Any]:
        content = json.dumps(dict(traits), ensure_ascii=False)
        response = await self._route(RequestType.CHARACTER_ANALYSIS, content, **options)
        return response.data or {}

    async def generate_outline(self, premise: str, context: Optional[StoryContext] = None, **options: Any) -> Response:
        return await self._route(RequestType.OUTLINE, premise, context, **options)

    async def suggest_scene_structure(self, scene: str, context: Optional[StoryContext] = None, **options: Any) -> Response:
        return await self._route(RequestType.SCENE_STRUCTURE, scene, context, **options)

    async def generate_dialogue(self, prompt: str, context: Optional[StoryContext] = None, **options: Any) -> Response:
        return await self._route(RequestType.DIALOGUE_GENERATION, prompt, context, **options)

    async def detect_plot_holes(self, content: str, **options: Any) -> Dict[str, Any]:
        response = await self._route(RequestType.PLOT_HOLE_DETECTION, content, **options)
        return response.data or {}

    async def analyze_pacing(self, content: str, **options: Any) -> Dict[str, Any]:
        response = await self._route(RequestType.PACING_ANALYSIS, content, **options)
        return response.data or {}

    async def check_consistency(self, content: str, **options: Any) -> Dict[str, Any]:
        response = await self._route(RequestType.CONSISTENCY_CHECK, content, **options)
        return response.data or {}

    async def analyze_manuscript(self, content: str, **options: Any) -> Dict[str, Any]:
        response = await self._route(RequestType.MANUSCRIPT_ANALYSIS, content, **options)
        return response.data or {}

    async def research(self, question: str, context: Optional[StoryContext] = None, **options: Any) -> Response:
        return await self._route(RequestType.RESEARCH, question, context, **options)

    async def brainstorm(self, topic: str, context: Optional[StoryContext] = None, **options: Any) -> Response:
        return await self._route(RequestType.BRAINSTORMING, topic, context, **options)

    async def get_provider_for_request(self, request: RoutingRequest) -> Optional[BaseProvider]:
        self._ensure_ready()
        return await self.router.get_provider_for_request(request)

    async def get_routing_recommendations(
        self,
        request_type: RequestType | str,
        context: Optional[StoryContext] = None,
    ) -> Recommendation:
        self._ensure_ready()
        return await self.router.get_routing_recommendations(request_type, context)

    def get_request_metrics(self) -> Dict[str, Dict[str, Any]]:
        self._ensure_ready()
        return self.router.get_request_metrics()

    def clear_metrics(self) -> None:
        self._ensure_ready()
        self.router.clear_metrics()

    # Provider queries

    async def get_available_providers(self) -> List[BaseProvider]:
        self._ensure_ready()
        return await self.registry.get_available_providers()

    def get_all_providers(self) -> List[BaseProvider]:
        self._ensure_ready()
        return self.registry.get_all_providers()

    def get_provider(self, name: str) -> Optional[BaseProvider]:
        self._ensure_ready()
        return self.registry.get_provider(name)

    def get_providers_by_type(self, provider_type: ProviderType | str) -> List[BaseProvider]:
        self._ensure_ready()
        return self.registry.get_providers_by_type(provider_type)

    def get_providers_by_capability(self, capability: str) -> List[BaseProvider]:
        self._ensure_ready()
        return self.registry.get_providers_by_capability(capability)

    def get_provider_info(self, name: str) -> Optional[Dict[str, Any]]:
        self._ensure_ready()
        provider = self.registry.get_provider(name)
        return provider.get_info() if provider else None

    def get_all_provider_info(self) -> List[Dict[str, Any]]:
        self._ensure_ready()
        return [provider.get_info() for provider in self.registry.get_all_providers()]

    async def health_check(self) -> Dict[str, HealthStatus]:
        self._ensure_ready()
        providers = self.registry.get_all_providers()
        results = await asyncio.gather(*(provider.health_check() for provider in providers), return_exceptions=True)
        report: Dict[str, HealthStatus] = {}
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                logger.error("Health check failed for provider %s: %s", provider.name, result)
                result = HealthStatus(healthy=False, response_time=0.0, details=str(result))
            report[provider.name] = result
        return report

    def get_provider_stats(self) -> Dict[str, Dict[str, Any]]:
        self._ensure_ready()
        metrics = self.metrics.snapshot()
        return {
            provider.name: {
                "type": provider.type.value,
                "priority": provider.priority,
                "capabilities": len(provider.capabilities),
                "status": provider.status.value,
                "usage": provider.get_usage_stats(),
                "routing": metrics.get(provider.name),
            }
            for provider in self.registry.get_all_providers()
        }

    async def test_provider(self, name: str) -> Optional[Dict[str, Any]]:
        self._ensure_ready()
        provider = self.registry.get_provider(name)
        if provider is None:
            return None
        return await self.router.test_provider(provider)
