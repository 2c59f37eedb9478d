"""Provider configuration, routing weights and logging setup."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PROVIDERS_ENV = "STORY_ROUTER_PROVIDERS"
TRUE_VALUES = {"1", "true", "yes", "on"}


def configure_logging(level: Optional[str] = None) -> None:
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO))


@dataclass
class ProviderDefinition:
    name: str
    type: str
    config: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    priority: int = 0
    task_preferences: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderDefinition":
        if not data.get("name") or not data.get("type"):
            raise ConfigurationError(f"Provider entry needs a name and a type: {dict(data)}")
        config = dict(data.get("config") or {})
        key_env = config.pop("api_key_env", None)
        if key_env and not config.get("api_key"):
            config["api_key"] = os.getenv(key_env)
        return cls(
            name=str(data["name"]),
            type=str(data["type"]),
            config=config,
            enabled=bool(data.get("enabled", True)),
            priority=int(data.get("priority", 0)),
            task_preferences=dict(data.get("task_preferences") or {}),
        )


@dataclass
class ScoringWeights:
    """Tunable score bonuses used by the router.

    None of these magnitudes were validated against user outcomes; treat them
    as starting points.
    """

    specialized_bonus: float = 5.0
    genre_bonus: float = 2.0
    audience_bonus: float = 1.0
    performance_weight: float = 4.0
    neutral_performance: float = 0.75
    latency_ceiling: float = 10.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoringWeights":
        known = {item.name for item in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown scoring weights: {sorted(unknown)}")
        return cls(**{key: float(value) for key, value in data.items()})


@dataclass
class RoutingSettings:
    max_attempts: int = 4

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoutingSettings":
        max_attempts = int(data.get("max_attempts", cls.max_attempts))
        if max_attempts < 1:
            raise ConfigurationError("routing.max_attempts must be at least 1")
        return cls(max_attempts=max_attempts)


class RouterConfig(Protocol):
    scoring_weights: ScoringWeights
    routing: RoutingSettings

    def get_enabled_providers(self) -> List[ProviderDefinition]: ...

    def is_cloud_ai_allowed(self) -> bool: ...

    def get_provider_for_task(self, task_type: str) -> Optional[str]: ...


class JsonRouterConfig:
    """Configuration backed by a JSON document of provider definitions."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        data = dict(data or {})
        self.providers = [ProviderDefinition.from_dict(entry) for entry in data.get("providers", [])]
        self.allow_cloud_ai = bool(data.get("privacy", {}).get("allow_cloud_ai", True))
        self.scoring_weights = ScoringWeights.from_dict(data.get("scoring", {}))
        self.routing = RoutingSettings.from_dict(data.get("routing", {}))

    @classmethod
    def from_file(cls, path: Path | str) -> "JsonRouterConfig":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Provider configuration missing at {path}")
        with path.open("r", encoding="utf-8") as handle:
            try:
                return cls(json.load(handle))
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid provider configuration {path}: {exc}") from exc

    @classmethod
    def from_env(cls) -> "JsonRouterConfig":
        load_dotenv()
        path = os.getenv(PROVIDERS_ENV)
        config = cls.from_file(path) if path else cls({"providers": providers_from_env()})
        allow_cloud = os.getenv("ALLOW_CLOUD_AI")
        if allow_cloud is not None:
            config.allow_cloud_ai = allow_cloud.lower() in TRUE_VALUES
        return config

    def get_enabled_providers(self) -> List[ProviderDefinition]:
        return [provider for provider in self.providers if provider.enabled]

    def is_cloud_ai_allowed(self) -> bool:
        return self.allow_cloud_ai

    def get_provider_for_task(self, task_type: str) -> Optional[str]:
        preferred = [provider for provider in self.get_enabled_providers() if provider.task_preferences.get(task_type)]
        if not preferred:
            return None
        return max(preferred, key=lambda provider: provider.priority).name


def providers_from_env() -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    cowriter_endpoint = os.getenv("COWRITER_ENDPOINT")
    if cowriter_endpoint:
        entries.append(
            {"name": "SoYume Co-writer", "type": "cowriter", "priority": 10, "config": {"endpoint": cowriter_endpoint}}
        )
    ollama_host = os.getenv("OLLAMA_HOST")
    if ollama_host:
        entries.append(
            {"name": "ollama", "type": "local", "priority": 5, "config": {"host": ollama_host, "model": os.getenv("OLLAMA_MODEL", "llama3")}}
        )
    for name, key_env in (("openai", "OPENAI_API_KEY"), ("anthropic", "ANTHROPIC_API_KEY"), ("gemini", "GEMINI_API_KEY")):
        if os.getenv(key_env):
            entries.append({"name": name, "type": "cloud", "priority": 7, "config": {"api_key_env": key_env}})
    return entries


__all__ = [
    "JsonRouterConfig",
    "ProviderDefinition",
    "RouterConfig",
    "RoutingSettings",
    "ScoringWeights",
    "configure_logging",
    "providers_from_env",
]
