"""Shared fixtures for the story router tests."""
from __future__ import annotations

from typing import Dict

import pytest
import pytest_asyncio

from fakes import FakeProvider, StaticConfig, capabilities, cloud, cowriter, local
from story_router.metrics import MetricsStore
from story_router.registry import ProviderRegistry
from story_router.router import Router


@pytest.fixture
def config() -> StaticConfig:
    return StaticConfig()


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry()


@pytest.fixture
def router(registry: ProviderRegistry, config: StaticConfig) -> Router:
    return Router(registry, config, MetricsStore())


@pytest_asyncio.fixture
async def scenario(registry: ProviderRegistry) -> Dict[str, FakeProvider]:
    """Co-writer, local and cloud providers registered and ready."""

    providers = {
        "cowriter": cowriter(caps=capabilities("outline_generation")),
        "local": local(),
        "cloud": cloud(caps=capabilities("text_generation", offline=False)),
    }
    for provider in providers.values():
        await provider.initialize({})
        registry.register(provider)
    return providers
