"""Provider abstraction shared by every backend variant."""
from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Tuple

import aiohttp

from ..models import (
    Capability,
    HealthStatus,
    ProviderMetadata,
    ProviderStatus,
    ProviderType,
    Response,
    ResponseMetadata,
    StoryContext,
)

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("api_key", "password", "token")

ANALYSIS_INSTRUCTION = (
    "Analyze the following story text. Respond with ONLY a JSON object with the keys "
    '"structure", "characters", "pacing", "consistency", "overall_score" (0-100) '
    'and "recommendations" (list of strings).'
)

CHARACTER_INSTRUCTION = (
    "Create a fictional character from the traits below. Respond with ONLY a JSON object with "
    'the keys "name", "archetype", "traits", "relationships", "development_arc" and "voice_profile".'
)


class ProviderError(RuntimeError):
    """Raised when a provider request fails."""


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "provider"


def estimate_tokens(text: str) -> int:
    # Roughly four characters per token for English prose.
    return (len(text) + 3) // 4


def parse_json_payload(text: str, provider_name: str) -> Dict[str, Any]:
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        raise ProviderError(f"{provider_name} returned no JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ProviderError(f"{provider_name} returned malformed JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProviderError(f"{provider_name} returned a JSON value that is not an object")
    return data


def build_system_prompt(context: Optional[StoryContext]) -> str:
    parts = ["You are a creative writing assistant helping an author with their story."]
    if context is not None:
        if context.genre:
            parts.append(f"Genre: {', '.join(context.genre)}.")
        if context.target_audience:
            parts.append(f"Target audience: {context.target_audience}.")
        if context.previous_context:
            parts.append(f"Story so far: {context.previous_context}")
    return " ".join(parts)


async def post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    label: str,
    timeout: float,
    headers: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.post(url, headers=dict(headers or {}), json=dict(payload)) as response:
            data = await response.json(content_type=None)
            if response.status >= 400:
                message = response.reason
                if isinstance(data, dict):
                    error = data.get("error", {})
                    message = error.get("message", message) if isinstance(error, dict) else error or message
                raise ProviderError(f"{label} error {response.status}: {message}")
    if not isinstance(data, dict):
        raise ProviderError(f"{label} returned an unexpected payload")
    return data


async def get_ok(url: str, *, timeout: float, headers: Optional[Mapping[str, str]] = None) -> bool:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.get(url, headers=dict(headers or {})) as response:
            return response.status < 400


class BaseProvider(ABC):
    """Shared lifecycle for providers; subclasses implement the backend calls."""

    type: ProviderType
    version: str = "1.0.0"
    default_timeout: float = 60.0
    default_model: str = "unknown"
    capabilities: Tuple[Capability, ...] = ()

    def __init__(
        self,
        name: str,
        priority: int = 0,
        *,
        provider_id: Optional[str] = None,
        metadata: Optional[ProviderMetadata] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.name = name
        self.id = provider_id or slugify(name)
        self.priority = priority
        self.metadata = metadata or ProviderMetadata()
        self.timeout = timeout or self.default_timeout
        self.status = ProviderStatus.UNINITIALIZED
        self.config: Dict[str, Any] = {}
        self._usage = {"requests": 0, "errors": 0, "tokens": 0}

    @property
    def model(self) -> str:
        return str(self.config.get("model") or self.default_model)

    async def initialize(self, config: Optional[Mapping[str, Any]] = None) -> None:
        self.config = {**self.config, **dict(config or {})}
        if self.config.get("timeout"):
            self.timeout = float(self.config["timeout"])
        genres = self.config.get("specialized_genres")
        if genres:
            self.metadata.specialized_genres = list(genres)
        try:
            await self._do_initialize()
        except Exception:
            self.status = ProviderStatus.UNAVAILABLE
            raise
        self.status = ProviderStatus.READY
        logger.info("%s provider initialized", self.name)

    async def _do_initialize(self) -> None:
        return None

    async def _probe(self) -> bool:
        return True

    async def _perform_health_check(self) -> None:
        if not await self._probe():
            raise ProviderError(f"{self.name} is not reachable")

    async def _do_shutdown(self) -> None:
        return None

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        context: Optional[StoryContext] = None,
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Response:  # pragma: no cover - interface
        raise NotImplementedError

    async def analyze_story(self, content: str) -> Dict[str, Any]:
        """Ask the backend for a JSON story analysis.

        Backends with a dedicated analysis endpoint override this.
        """
        response = await self.generate_text(f"{ANALYSIS_INSTRUCTION}\n\n{content}", temperature=0.2)
        return parse_json_payload(response.content, self.name)

    async def generate_character(self, traits: Mapping[str, Any]) -> Dict[str, Any]:
        prompt = f"{CHARACTER_INSTRUCTION}\n\n{json.dumps(dict(traits), ensure_ascii=False)}"
        response = await self.generate_text(prompt)
        return parse_json_payload(response.content, self.name)

    async def is_available(self) -> bool:
        if self.status is not ProviderStatus.READY:
            return False
        try:
            return bool(await self._probe())
        except Exception as exc:
            logger.warning("Availability probe failed for %s: %s", self.name, exc)
            return False

    async def health_check(self) -> HealthStatus:
        if self.status is not ProviderStatus.READY:
            return HealthStatus(healthy=False, response_time=0.0, details=f"status: {self.status.value}")
        started = time.monotonic()
        try:
            await self._perform_health_check()
        except Exception as exc:
            return HealthStatus(healthy=False, response_time=time.monotonic() - started, details=str(exc))
        return HealthStatus(healthy=True, response_time=time.monotonic() - started)

    def get_usage_stats(self) -> Dict[str, int]:
        return dict(self._usage)

    async def shutdown(self) -> None:
        await self._do_shutdown()
        self.status = ProviderStatus.SHUTDOWN
        logger.info("%s provider shut down", self.name)

    def get_info(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "version": self.version,
            "priority": self.priority,
            "status": self.status.value,
            "capabilities": [capability.name for capability in self.capabilities],
            "config": {key: value for key, value in self.config.items() if key not in SENSITIVE_KEYS},
        }

    def _record_usage(self, tokens: int = 0, *, error: bool = False) -> None:
        self._usage["requests"] += 1
        self._usage["tokens"] += tokens
        if error:
            self._usage["errors"] += 1

    def _create_response(self, content: str, *, tokens: Optional[int] = None, confidence: float = 0.8) -> Response:
        used = tokens if tokens is not None else estimate_tokens(content)
        self._record_usage(used)
        return Response(
            content=content,
            confidence=confidence,
            metadata=ResponseMetadata(model=self.model, provider=self.name, tokens_used=used),
        )

    def _max_tokens(self, override: Optional[int]) -> int:
        return int(override or self.config.get("max_tokens") or 800)

    def _temperature(self, override: Optional[float]) -> float:
        if override is not None:
            return override
        return float(self.config.get("temperature", 0.7))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}', type='{self.type.value}')>"
