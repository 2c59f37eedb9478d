"""Tests for provider configuration loading and the provider factory."""
from __future__ import annotations

import json

import pytest

from story_router.config import JsonRouterConfig, ProviderDefinition, ScoringWeights, providers_from_env
from story_router.errors import ConfigurationError, UnknownProviderTypeError
from story_router.providers import CowriterProvider, GeminiProvider, LocalProvider, OpenAIProvider, default_factory


def write_config(tmp_path, data) -> str:
    path = tmp_path / "providers.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_json_config_reads_providers_privacy_and_weights(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_OPENAI_KEY", "sk-test")
    path = write_config(
        tmp_path,
        {
            "providers": [
                {"name": "openai", "type": "cloud", "priority": 7, "config": {"api_key_env": "TEST_OPENAI_KEY"}},
                {"name": "ollama", "type": "local", "priority": 5, "enabled": False},
            ],
            "privacy": {"allow_cloud_ai": False},
            "scoring": {"genre_bonus": 3},
            "routing": {"max_attempts": 2},
        },
    )

    config = JsonRouterConfig.from_file(path)

    assert [provider.name for provider in config.get_enabled_providers()] == ["openai"]
    assert config.get_enabled_providers()[0].config == {"api_key": "sk-test"}
    assert config.is_cloud_ai_allowed() is False
    assert config.scoring_weights.genre_bonus == 3.0
    assert config.scoring_weights.specialized_bonus == ScoringWeights().specialized_bonus
    assert config.routing.max_attempts == 2


def test_task_preference_picks_highest_priority_enabled_provider():
    config = JsonRouterConfig(
        {
            "providers": [
                {"name": "low", "type": "local", "priority": 1, "task_preferences": {"outline": True}},
                {"name": "high", "type": "cloud", "priority": 9, "task_preferences": {"outline": True}},
                {"name": "off", "type": "cloud", "priority": 20, "enabled": False, "task_preferences": {"outline": True}},
            ]
        }
    )

    assert config.get_provider_for_task("outline") == "high"
    assert config.get_provider_for_task("research") is None


@pytest.mark.parametrize(
    "data, message",
    [
        ({"providers": [{"type": "local"}]}, "name and a type"),
        ({"scoring": {"vibes": 1}}, "Unknown scoring weights"),
        ({"routing": {"max_attempts": 0}}, "at least 1"),
    ],
)
def test_invalid_config_raises_configuration_error(data, message):
    with pytest.raises(ConfigurationError, match=message):
        JsonRouterConfig(data)


def test_missing_or_malformed_file_raises(tmp_path):
    with pytest.raises(ConfigurationError, match="missing"):
        JsonRouterConfig.from_file(tmp_path / "nope.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Invalid"):
        JsonRouterConfig.from_file(broken)


def test_from_env_derives_providers_and_cloud_switch(monkeypatch):
    for key in ("STORY_ROUTER_PROVIDERS", "COWRITER_ENDPOINT", "ANTHROPIC_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("story_router.config.load_dotenv", lambda: False)
    monkeypatch.setenv("OLLAMA_HOST", "http://localhost:11434")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("ALLOW_CLOUD_AI", "no")

    config = JsonRouterConfig.from_env()

    names = [provider.name for provider in config.get_enabled_providers()]
    assert names == ["ollama", "openai"]
    assert config.get_enabled_providers()[1].config["api_key"] == "sk-env"
    assert config.is_cloud_ai_allowed() is False


def test_providers_from_env_is_empty_without_variables(monkeypatch):
    for key in ("COWRITER_ENDPOINT", "OLLAMA_HOST", "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.delenv(key, raising=False)

    assert providers_from_env() == []


@pytest.mark.parametrize(
    "name, kind, backend, expected",
    [
        ("SoYume Co-writer", "cowriter", None, CowriterProvider),
        ("lm studio", "local", None, LocalProvider),
        ("openai", "cloud", None, OpenAIProvider),
        ("my-router", "cloud", "openrouter", OpenAIProvider),
        ("gemini", "cloud", None, GeminiProvider),
    ],
)
def test_factory_resolves_backend_classes(name, kind, backend, expected):
    config = {"backend": backend} if backend else {}
    provider = default_factory().create(ProviderDefinition(name=name, type=kind, priority=3, config=config))

    assert isinstance(provider, expected)
    assert provider.name == name
    assert provider.priority == 3


@pytest.mark.parametrize("kind, name", [("quantum", "x"), ("cloud", "unknown-vendor")])
def test_factory_rejects_unknown_types(kind, name):
    with pytest.raises(UnknownProviderTypeError):
        default_factory().create(ProviderDefinition(name=name, type=kind))
