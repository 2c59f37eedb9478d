"""Google Gemini provider."""
from __future__ import annotations

from typing import Optional

import aiohttp

from ..models import ProviderType, Response, StoryContext
from .base import BaseProvider, ProviderError, build_system_prompt, post_json
from .openai_provider import CLOUD_CAPABILITIES


class GeminiProvider(BaseProvider):
    type = ProviderType.CLOUD
    capabilities = CLOUD_CAPABILITIES
    default_model = "gemini-1.5-flash"

    def __init__(self, name: str = "gemini", priority: int = 5, **kwargs) -> None:
        super().__init__(name, priority, **kwargs)
        self.base_url = "https://generativelanguage.googleapis.com"

    async def _do_initialize(self) -> None:
        if not self.config.get("api_key"):
            raise ProviderError(f"{self.name} requires an api_key")
        self.base_url = (self.config.get("base_url") or self.base_url).rstrip("/")

    async def generate_text(
        self,
        prompt: str,
        context: Optional[StoryContext] = None,
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Response:
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent?key={self.config['api_key']}"
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": self._temperature(temperature),
                "maxOutputTokens": self._max_tokens(max_tokens),
            },
            "systemInstruction": {"parts": [{"text": build_system_prompt(context)}]},
        }
        try:
            data = await post_json(url, payload, label=self.name, timeout=self.timeout)
        except (aiohttp.ClientError, ProviderError):
            self._record_usage(error=True)
            raise
        candidates = data.get("candidates", [])
        if not candidates:
            self._record_usage(error=True)
            raise ProviderError("Gemini response did not include candidates")
        parts = candidates[0].get("content", {}).get("parts", [])
        text = "".join(part.get("text", "") for part in parts)
        usage = data.get("usageMetadata", {})
        return self._create_response(text, tokens=usage.get("totalTokenCount"))
