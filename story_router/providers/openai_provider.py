"""OpenAI provider implementation, also used for OpenAI-compatible cloud APIs."""
from __future__ import annotations

from typing import Dict, Optional

import aiohttp

from ..models import Capability, ProviderType, Response, StoryContext
from .base import BaseProvider, ProviderError, build_system_prompt, get_ok, post_json

DEFAULT_ENDPOINTS: Dict[str, str] = {
    "openai": "https://api.openai.com",
    "openrouter": "https://openrouter.ai/api",
    "mistral": "https://api.mistral.ai",
    "moonshot": "https://api.moonshot.cn",
    "kimi": "https://api.moonshot.cn",
}

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "gpt-4o-mini",
    "openrouter": "openai/gpt-4o-mini",
    "mistral": "mistral-small-latest",
    "moonshot": "moonshot-v1-8k",
    "kimi": "moonshot-v1-8k",
}

CLOUD_CAPABILITIES = (
    Capability("text_generation", "General prose generation", ("text",), ("text",), offline=False),
    Capability("dialogue_generation", "Character dialogue", ("text",), ("text",), offline=False),
    Capability("research", "Background research", ("text",), ("text",), offline=False),
    Capability("brainstorming", "Idea generation", ("text",), ("text",), offline=False),
    Capability("story_analysis", "Story analysis as JSON", ("story_text",), ("story_analysis",), offline=False),
    Capability("character_analysis", "Character profiles as JSON", ("character_data",), ("character_profile",), offline=False),
)


class OpenAIProvider(BaseProvider):
    type = ProviderType.CLOUD
    capabilities = CLOUD_CAPABILITIES

    def __init__(self, name: str = "openai", priority: int = 5, **kwargs) -> None:
        super().__init__(name, priority, **kwargs)
        self.backend = name.lower()
        self.base_url = DEFAULT_ENDPOINTS.get(self.backend, DEFAULT_ENDPOINTS["openai"])
        self.default_model = DEFAULT_MODELS.get(self.backend, DEFAULT_MODELS["openai"])

    async def _do_initialize(self) -> None:
        if not self.config.get("api_key"):
            raise ProviderError(f"{self.name} requires an api_key")
        backend = str(self.config.get("backend") or self.backend).lower()
        if backend != self.backend and backend in DEFAULT_ENDPOINTS:
            self.backend = backend
            self.base_url = DEFAULT_ENDPOINTS[backend]
            self.default_model = DEFAULT_MODELS[backend]
        self.base_url = (self.config.get("base_url") or self.base_url).rstrip("/")

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config['api_key']}",
            "Content-Type": "application/json",
        }

    async def _perform_health_check(self) -> None:
        if not await get_ok(f"{self.base_url}/v1/models", timeout=10, headers=self._headers):
            raise ProviderError(f"{self.name} model listing failed")

    async def generate_text(
        self,
        prompt: str,
        context: Optional[StoryContext] = None,
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Response:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(context)},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature(temperature),
            "max_tokens": self._max_tokens(max_tokens),
        }
        try:
            data = await post_json(
                f"{self.base_url}/v1/chat/completions",
                payload,
                label=self.name,
                timeout=self.timeout,
                headers=self._headers,
            )
            choice = data["choices"][0]["message"]
        except (aiohttp.ClientError, ProviderError, KeyError, IndexError) as exc:
            self._record_usage(error=True)
            if isinstance(exc, (KeyError, IndexError)):
                raise ProviderError(f"{self.name} response did not include a choice") from exc
            raise
        text = choice.get("content") or ""
        usage = data.get("usage", {})
        return self._create_response(text, tokens=usage.get("total_tokens"))
