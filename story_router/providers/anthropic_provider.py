"""Anthropic Claude provider."""
from __future__ import annotations

from typing import Optional

import aiohttp

from ..models import ProviderType, Response, StoryContext
from .base import BaseProvider, ProviderError, build_system_prompt, post_json
from .openai_provider import CLOUD_CAPABILITIES


class AnthropicProvider(BaseProvider):
    type = ProviderType.CLOUD
    capabilities = CLOUD_CAPABILITIES
    default_model = "claude-3-5-haiku-latest"

    def __init__(self, name: str = "anthropic", priority: int = 5, **kwargs) -> None:
        super().__init__(name, priority, **kwargs)
        self.base_url = "https://api.anthropic.com"

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
        headers = {
            "x-api-key": self.config["api_key"],
            "anthropic-version": self.config.get("version", "2023-06-01"),
            "content-type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": self._max_tokens(max_tokens),
            "temperature": self._temperature(temperature),
            "system": build_system_prompt(context),
            "messages": [
                {
                    "role": "user",
                    "content": prompt,
                }
            ],
        }
        try:
            data = await post_json(
                f"{self.base_url}/v1/messages",
                payload,
                label=self.name,
                timeout=self.timeout,
                headers=headers,
            )
        except (aiohttp.ClientError, ProviderError):
            self._record_usage(error=True)
            raise
        content = data.get("content", [])
        text = "".join(part.get("text", "") for part in content)
        usage = data.get("usage", {})
        tokens = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)
        return self._create_response(text, tokens=tokens or None)
