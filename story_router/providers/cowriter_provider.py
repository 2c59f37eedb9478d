"""Specialized offline co-writer provider.

The co-writer model runs in a separate local inference service; this class is
the client for it. It exposes dedicated endpoints for analysis and character
work so it does not need the JSON-prompting fallback the generic providers use.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

import aiohttp

from ..models import Capability, ProviderMetadata, ProviderType, Response, StoryContext
from .base import BaseProvider, ProviderError, get_ok, post_json

DEFAULT_ENDPOINT = "http://127.0.0.1:8765"
PROBE_TIMEOUT = 2.0

COWRITER_CAPABILITIES = (
    Capability("outline_generation", "Story outlines from premises", ("text", "story_premise"), ("outline", "structure"), offline=True),
    Capability("character_analysis", "Character personalities and arcs", ("character_data", "text"), ("character_profile",), offline=True),
    Capability("scene_structure", "Scene structure generation and analysis", ("scene_context", "text"), ("scene_outline",), offline=True),
    Capability("story_analysis", "Structure, pacing and consistency analysis", ("story_text", "manuscript"), ("story_analysis",), offline=True),
    Capability("plot_hole_detection", "Plot inconsistencies and logical gaps", ("story_text",), ("plot_issues",), offline=True),
    Capability("pacing_analysis", "Pacing and tension curves", ("story_text", "chapter_sequence"), ("pacing_analysis",), offline=True),
    Capability("consistency_check", "Character and world consistency", ("story_text",), ("consistency_report",), offline=True),
    Capability("manuscript_analysis", "Story elements from manuscripts", ("manuscript_text",), ("extracted_elements",), offline=True),
    Capability("foreshadowing_suggestions", "Foreshadowing opportunities", ("story_outline",), ("foreshadowing_suggestions",), offline=True),
)


def _context_payload(context: Optional[StoryContext]) -> Dict[str, Any]:
    if context is None:
        return {}
    return {
        "genre": list(context.genre),
        "target_audience": context.target_audience,
        "characters": [str(character) for character in context.characters],
        "previous_context": context.previous_context,
    }


class CowriterProvider(BaseProvider):
    type = ProviderType.COWRITER
    capabilities = COWRITER_CAPABILITIES
    default_timeout = 120.0
    default_model = "soyume-cowriter-v1"

    def __init__(self, name: str = "SoYume Co-writer", priority: int = 10, **kwargs) -> None:
        kwargs.setdefault(
            "metadata",
            ProviderMetadata(
                author="SoYume Team",
                description="Specialized model for story analysis, character development and narrative structure",
                supported_languages=["en", "ja"],
                requirements={"min_ram": "8GB", "gpu": False, "internet_required": False, "api_key_required": False},
                specialized_genres=["fantasy", "science fiction", "romance", "mystery"],
            ),
        )
        super().__init__(name, priority, **kwargs)
        self.endpoint = DEFAULT_ENDPOINT

    async def _do_initialize(self) -> None:
        self.endpoint = str(self.config.get("endpoint", self.endpoint)).rstrip("/")
        if self.config.get("verify_on_start", True) and not await self._probe():
            raise ProviderError(f"Co-writer service is not running at {self.endpoint}")

    async def _probe(self) -> bool:
        try:
            return await get_ok(f"{self.endpoint}/health", timeout=PROBE_TIMEOUT)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False

    async def _post(self, path: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            return await post_json(f"{self.endpoint}{path}", payload, label=self.name, timeout=self.timeout)
        except (aiohttp.ClientError, ProviderError):
            self._record_usage(error=True)
            raise

    async def generate_text(
        self,
        prompt: str,
        context: Optional[StoryContext] = None,
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Response:
        data = await self._post(
            "/generate",
            {
                "prompt": prompt,
                "context": _context_payload(context),
                "max_tokens": self._max_tokens(max_tokens),
                "temperature": self._temperature(temperature),
            },
        )
        text = data.get("text")
        if not isinstance(text, str):
            self._record_usage(error=True)
            raise ProviderError(f"{self.name} returned no text")
        return self._create_response(text, tokens=data.get("tokens"), confidence=float(data.get("confidence", 0.85)))

    async def analyze_story(self, content: str) -> Dict[str, Any]:
        data = await self._post("/analyze", {"content": content})
        self._record_usage()
        return data

    async def generate_character(self, traits: Mapping[str, Any]) -> Dict[str, Any]:
        data = await self._post("/character", {"traits": dict(traits)})
        self._record_usage()
        return data
