"""Generic local provider for OpenAI-compatible servers such as Ollama or LM Studio."""
from __future__ import annotations

import asyncio
from typing import Dict, Optional
from urllib.parse import urlsplit

import aiohttp

from ..models import Capability, ProviderMetadata, ProviderType, Response, StoryContext
from .base import BaseProvider, ProviderError, build_system_prompt, get_ok, post_json

DEFAULT_PORTS: Dict[str, int] = {
    "ollama": 11434,
    "lm studio": 1234,
    "lmstudio": 1234,
}
FALLBACK_PORT = 8080
PROBE_TIMEOUT = 2.0

LOCAL_CAPABILITIES = (
    Capability("text_generation", "Prose generation on a local model", ("text",), ("text",), offline=True),
    Capability("dialogue_generation", "Dialogue on a local model", ("text",), ("text",), offline=True),
    Capability("brainstorming", "Idea generation on a local model", ("text",), ("text",), offline=True),
)


class LocalProvider(BaseProvider):
    type = ProviderType.LOCAL
    capabilities = LOCAL_CAPABILITIES
    default_timeout = 120.0
    default_model = "llama3"

    def __init__(self, name: str = "ollama", priority: int = 5, **kwargs) -> None:
        kwargs.setdefault(
            "metadata",
            ProviderMetadata(description="Local model server", requirements={"internet_required": False}),
        )
        super().__init__(name, priority, **kwargs)
        self.host = "localhost"
        self.port = DEFAULT_PORTS.get(name.lower(), FALLBACK_PORT)
        self._url: Optional[str] = None

    @property
    def base_url(self) -> str:
        return self._url or f"http://{self.host}:{self.port}"

    async def _do_initialize(self) -> None:
        host = str(self.config.get("host", self.host))
        # OLLAMA_HOST may be a full URL, host:port or a bare host name.
        if "://" in host:
            self._url = host.rstrip("/")
        else:
            parts = urlsplit(f"//{host}")
            self.host = parts.hostname or self.host
            self.port = parts.port or self.port
        self.port = int(self.config.get("port") or self.port)
        if self.config.get("verify_on_start", True) and not await self._probe():
            raise ProviderError(f"Local service {self.name} is not running at {self.base_url}")

    async def _probe(self) -> bool:
        try:
            return await get_ok(f"{self.base_url}/v1/models", timeout=PROBE_TIMEOUT)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False

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
            "stream": False,
        }
        try:
            data = await post_json(
                f"{self.base_url}/v1/chat/completions",
                payload,
                label=f"Local service {self.name}",
                timeout=self.timeout,
            )
            choice = data["choices"][0]["message"]
        except (aiohttp.ClientError, ProviderError, KeyError, IndexError) as exc:
            self._record_usage(error=True)
            if isinstance(exc, (KeyError, IndexError)):
                raise ProviderError(f"{self.name} response did not include a choice") from exc
            raise
        usage = data.get("usage", {})
        return self._create_response(choice.get("content") or "", tokens=usage.get("total_tokens"), confidence=0.7)
