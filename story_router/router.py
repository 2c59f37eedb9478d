"""Scoring router with bounded fallback across eligible providers."""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import RouterConfig, RoutingSettings, ScoringWeights
from .errors import AllProvidersFailedError, NoSuitableProviderError, ProviderExecutionError
from .metrics import MetricsStore
from .models import (
    ANALYSIS_TYPES,
    CORE_CREATIVE_TYPES,
    REQUIRED_CAPABILITIES,
    Capability,
    ProviderType,
    Recommendation,
    RequestType,
    Response,
    ResponseMetadata,
    RoutingRequest,
    StoryContext,
)
from .providers.base import BaseProvider, ProviderError
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

YOUNG_ADULT_AUDIENCES = {"young-adult", "young adult", "ya"}
TEST_PROMPT = "Write a single sentence about a cat."


@dataclass
class ScoredProvider:
    provider: BaseProvider
    score: float
    reasons: List[str] = field(default_factory=list)


def matching_capabilities(provider: BaseProvider, request_type: RequestType) -> List[Capability]:
    accepted = REQUIRED_CAPABILITIES[request_type]
    return [capability for capability in provider.capabilities if capability.name in accepted]


def _parse_traits(content: str) -> Dict[str, Any]:
    try:
        traits = json.loads(content)
    except (TypeError, ValueError):
        return {"description": content}
    return traits if isinstance(traits, dict) else {"description": content}


def _confidence(result: Mapping[str, Any]) -> float:
    raw = result.get("overall_score", result.get("overallScore"))
    if not isinstance(raw, (int, float)):
        return 0.8
    value = raw / 100 if raw > 1 else raw
    return max(0.0, min(1.0, float(value)))


class Router:
    def __init__(
        self,
        registry: ProviderRegistry,
        config: RouterConfig,
        metrics: Optional[MetricsStore] = None,
    ) -> None:
        self.registry = registry
        self.config = config
        self.metrics = metrics if metrics is not None else MetricsStore()

    @property
    def weights(self) -> ScoringWeights:
        return getattr(self.config, "scoring_weights", None) or ScoringWeights()

    @property
    def max_attempts(self) -> int:
        routing = getattr(self.config, "routing", None) or RoutingSettings()
        return routing.max_attempts

    def is_eligible(self, provider: BaseProvider, request: RoutingRequest, cloud_allowed: bool) -> bool:
        matching = matching_capabilities(provider, request.type)
        if not matching:
            return False
        if request.options.require_offline:
            if provider.type is ProviderType.CLOUD or not all(capability.offline for capability in matching):
                return False
        if not cloud_allowed and provider.type is ProviderType.CLOUD:
            return False
        return True

    async def eligible_providers(self, request: RoutingRequest) -> List[BaseProvider]:
        available = await self.registry.get_available_providers()
        cloud_allowed = self.config.is_cloud_ai_allowed()
        return [provider for provider in available if self.is_eligible(provider, request, cloud_allowed)]

    def _performance(self, provider_name: str) -> Tuple[float, str]:
        weights = self.weights
        metrics = self.metrics.get(provider_name)
        if metrics is None or metrics.total_requests == 0:
            return weights.neutral_performance, "no history"
        latency_score = 0.0
        if metrics.successes:
            latency_score = max(0.0, 1 - metrics.average_response_time / weights.latency_ceiling)
        performance = metrics.success_rate * 0.7 + latency_score * 0.3
        return performance, f"success rate {metrics.success_rate:.0%}, avg {metrics.average_response_time:.2f}s"

    def score(self, provider: BaseProvider, request: RoutingRequest) -> ScoredProvider:
        weights = self.weights
        context = request.context
        score = float(provider.priority)
        reasons = [f"priority {provider.priority}"]
        is_cowriter = provider.type is ProviderType.COWRITER
        if is_cowriter and request.type in CORE_CREATIVE_TYPES:
            score += weights.specialized_bonus
            reasons.append(f"specialized engine for {request.type.value} (+{weights.specialized_bonus:g})")
        genres = {genre.lower() for genre in context.genre}
        affinity = {genre.lower() for genre in provider.metadata.specialized_genres}
        shared = sorted(genres & affinity)
        if shared:
            score += weights.genre_bonus
            reasons.append(f"genre affinity {', '.join(shared)} (+{weights.genre_bonus:g})")
        if is_cowriter and context.target_audience.lower() in YOUNG_ADULT_AUDIENCES:
            score += weights.audience_bonus
            reasons.append(f"young-adult audience (+{weights.audience_bonus:g})")
        performance, note = self._performance(provider.name)
        bonus = weights.performance_weight * performance
        score += bonus
        reasons.append(f"performance {note} (+{bonus:.2f})")
        return ScoredProvider(provider=provider, score=score, reasons=reasons)

    def _pinned(self, candidates: List[BaseProvider], request: RoutingRequest) -> Optional[ScoredProvider]:
        by_name = {provider.name: provider for provider in candidates}
        preferred = request.options.preferred_provider
        if preferred and preferred in by_name:
            return ScoredProvider(by_name[preferred], float("inf"), ["preferred provider requested"])
        override = self.config.get_provider_for_task(request.type.value)
        if override and override in by_name:
            return ScoredProvider(by_name[override], float("inf"), ["operator task override"])
        return None

    def rank(self, candidates: List[BaseProvider], request: RoutingRequest) -> List[ScoredProvider]:
        pinned = self._pinned(candidates, request)
        rest = [provider for provider in candidates if pinned is None or provider is not pinned.provider]
        # sorted() is stable, so equal scores and priorities keep registration order.
        scored = sorted(
            (self.score(provider, request) for provider in rest),
            key=lambda item: (-item.score, -item.provider.priority),
        )
        return [pinned, *scored] if pinned else scored

    async def get_provider_for_request(self, request: RoutingRequest) -> Optional[BaseProvider]:
        ranked = self.rank(await self.eligible_providers(request), request)
        return ranked[0].provider if ranked else None

    async def route_request(self, request: RoutingRequest) -> Response:
        response, _ = await self.dispatch(request)
        return response

    async def dispatch(self, request: RoutingRequest) -> Tuple[Response, BaseProvider]:
        """Route a request and return the response with the provider that produced it."""
        eligible = await self.eligible_providers(request)
        if not eligible:
            raise NoSuitableProviderError(request.type.value)
        remaining = list(eligible)
        failures: List[ProviderExecutionError] = []
        attempts = min(self.max_attempts, len(eligible))
        for attempt in range(1, attempts + 1):
            choice = self.rank(remaining, request)[0]
            provider = choice.provider
            started = time.monotonic()
            try:
                response = await asyncio.wait_for(self._invoke(provider, request), timeout=provider.timeout)
            except asyncio.TimeoutError:
                cause: Exception = ProviderError(f"timed out after {provider.timeout:g}s")
            except Exception as exc:
                cause = exc
            else:
                elapsed = time.monotonic() - started
                self.metrics.record_success(provider.name, elapsed)
                response.metadata.provider = provider.name
                response.metadata.response_time = elapsed
                response.metadata.rationale = choice.reasons
                logger.debug("Routed %s to %s in %.3fs", request.type.value, provider.name, elapsed)
                return response, provider
            self.metrics.record_failure(provider.name, time.monotonic() - started)
            failures.append(ProviderExecutionError(provider.name, cause))
            remaining.remove(provider)
            logger.warning(
                "Provider %s failed for %s (attempt %d/%d): %s",
                provider.name,
                request.type.value,
                attempt,
                attempts,
                cause,
            )
        raise AllProvidersFailedError(request.type.value, failures)

    async def _invoke(self, provider: BaseProvider, request: RoutingRequest) -> Response:
        if request.type is RequestType.CHARACTER_ANALYSIS:
            result = await provider.generate_character(_parse_traits(request.content))
            return self._structured_response(provider, result)
        if request.type in ANALYSIS_TYPES:
            result = await provider.analyze_story(request.content)
            return self._structured_response(provider, result)
        response = await provider.generate_text(
            request.content,
            request.context,
            max_tokens=request.options.max_tokens,
            temperature=request.options.temperature,
        )
        if not isinstance(response, Response) or not isinstance(response.content, str):
            raise ProviderError(f"{provider.name} returned a malformed response")
        if not response.content.strip():
            raise ProviderError(f"{provider.name} returned an empty response")
        return response

    def _structured_response(self, provider: BaseProvider, result: Any) -> Response:
        if not isinstance(result, dict):
            raise ProviderError(f"{provider.name} returned a malformed result")
        content = json.dumps(result, ensure_ascii=False)
        return Response(
            content=content,
            confidence=_confidence(result),
            metadata=ResponseMetadata(model=provider.model, provider=provider.name, tokens_used=len(content) // 4),
            data=result,
        )

    async def get_routing_recommendations(
        self,
        request_type: RequestType | str,
        context: Optional[StoryContext] = None,
    ) -> Recommendation:
        request = RoutingRequest(type=request_type, content="", context=context or StoryContext())
        ranked = self.rank(await self.eligible_providers(request), request)
        return Recommendation(
            request_type=request.type,
            recommended=[item.provider.name for item in ranked[:1]],
            alternatives=[item.provider.name for item in ranked[1:]],
            reasons={item.provider.name: item.reasons for item in ranked},
            scores={item.provider.name: item.score for item in ranked},
        )

    async def test_provider(self, provider: BaseProvider) -> Dict[str, Any]:
        started = time.monotonic()
        try:
            await asyncio.wait_for(
                provider.generate_text(TEST_PROMPT, StoryContext(genre=["test"], target_audience="general")),
                timeout=provider.timeout,
            )
        except Exception as exc:
            return {"success": False, "response_time": time.monotonic() - started, "error": str(exc) or repr(exc)}
        return {"success": True, "response_time": time.monotonic() - started}

    def get_request_metrics(self) -> Dict[str, Dict[str, Any]]:
        return self.metrics.snapshot()

    def clear_metrics(self) -> None:
        self.metrics.clear()
