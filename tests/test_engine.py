"""Tests for the engine lifecycle, events and convenience operations."""
from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from fakes import BrokenInitProvider, BrokenShutdownProvider, FakeProvider, StaticConfig, capabilities, cloud, cowriter
from story_router.config import ProviderDefinition
from story_router.engine import AIEngine, EngineState
from story_router.errors import (
    DuplicateProviderError,
    EngineNotInitializedError,
    NoSuitableProviderError,
    ProviderInitializationError,
)
from story_router.events import PROVIDER_ADDED, PROVIDER_REMOVED, REQUEST_COMPLETED, REQUEST_FAILED, EventBus
from story_router.models import ProviderStatus, ProviderType, RequestType, RoutingRequest
from story_router.providers.factory import ProviderFactory


class FakeCowriter(FakeProvider):
    type = ProviderType.COWRITER

    def __init__(self, name: str, priority: int = 0) -> None:
        super().__init__(name, priority, caps=capabilities("outline_generation", "story_analysis", "character_analysis"))


def fake_factory() -> ProviderFactory:
    factory = ProviderFactory()
    factory.register(ProviderType.LOCAL, "*", FakeProvider)
    factory.register(ProviderType.LOCAL, "broken", BrokenInitProvider)
    factory.register(ProviderType.LOCAL, "stubborn", BrokenShutdownProvider)
    factory.register(ProviderType.COWRITER, "*", FakeCowriter)
    return factory


def definitions(*entries):
    return [ProviderDefinition(name=name, type=kind, priority=priority) for name, kind, priority in entries]


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded(events):
    log = []
    for event in (PROVIDER_ADDED, PROVIDER_REMOVED, REQUEST_COMPLETED, REQUEST_FAILED):
        events.subscribe(event, lambda *args, event=event: log.append((event, args)))
    return log


@pytest.fixture
def engine_config() -> StaticConfig:
    return StaticConfig(definitions=definitions(("writer", "cowriter", 10), ("ollama", "local", 5)))


@pytest_asyncio.fixture
async def engine(engine_config, events):
    engine = AIEngine(engine_config, events, fake_factory())
    await engine.initialize()
    yield engine
    await engine.shutdown()


@pytest.mark.asyncio
async def test_initialize_registers_enabled_providers_and_emits_events(engine_config, events, recorded):
    engine_config.definitions.append(ProviderDefinition(name="disabled", type="local", enabled=False))
    engine = AIEngine(engine_config, events, fake_factory())

    await engine.initialize()

    assert engine.state is EngineState.READY
    assert [provider.name for provider in engine.get_all_providers()] == ["writer", "ollama"]
    assert [args[0].name for event, args in recorded if event == PROVIDER_ADDED] == ["writer", "ollama"]
    assert engine.get_provider("writer").priority == 10


@pytest.mark.asyncio
async def test_initialize_is_idempotent(engine, recorded):
    await engine.initialize()

    assert len(engine.get_all_providers()) == 2
    assert recorded == []


@pytest.mark.asyncio
async def test_failing_providers_do_not_abort_startup(events, caplog):
    config = StaticConfig(
        definitions=definitions(("broken", "local", 9), ("ollama", "local", 5), ("ollama", "local", 3), ("odd", "quantum", 1))
    )
    engine = AIEngine(config, events, fake_factory())

    await engine.initialize()

    assert [provider.name for provider in engine.get_all_providers()] == ["ollama"]
    assert engine.get_provider("ollama").priority == 5
    assert "Skipping provider broken" in caplog.text
    assert "Skipping provider odd" in caplog.text


@pytest.mark.asyncio
async def test_calls_before_initialize_fail_fast():
    engine = AIEngine(StaticConfig(), EventBus(), fake_factory())

    with pytest.raises(EngineNotInitializedError):
        await engine.generate_text("hello")
    with pytest.raises(EngineNotInitializedError):
        engine.get_all_providers()
    with pytest.raises(EngineNotInitializedError):
        engine.get_request_metrics()


@pytest.mark.asyncio
async def test_generate_text_emits_request_completed(engine, recorded):
    response = await engine.generate_text("The lighthouse keeper")

    assert response.metadata.provider == "ollama"
    event, (request, completed, provider) = recorded[-1]
    assert event == REQUEST_COMPLETED
    assert request.type is RequestType.PROSE_GENERATION
    assert completed is response
    assert provider.name == "ollama"


@pytest.mark.asyncio
async def test_failed_request_emits_request_failed_and_raises(engine, recorded):
    with pytest.raises(NoSuitableProviderError):
        await engine.suggest_scene_structure("A duel at dawn")

    event, (request, error) = recorded[-1]
    assert event == REQUEST_FAILED
    assert request.type is RequestType.SCENE_STRUCTURE
    assert isinstance(error, NoSuitableProviderError)


@pytest.mark.asyncio
async def test_convenience_operations_return_structured_data(engine):
    analysis = await engine.analyze_story("Chapter one")
    character = await engine.generate_character({"name": "Mira", "role": "thief"})
    outline = await engine.generate_outline("A dragon learns to read")

    assert analysis["analyzed_by"] == "writer"
    assert character["name"] == "Mira"
    assert outline.metadata.provider == "writer"


@pytest.mark.asyncio
async def test_request_options_flow_through_keyword_arguments(engine):
    response = await engine.generate_text("hello", preferred_provider="ollama", require_offline=True, max_tokens=64)

    assert response.metadata.provider == "ollama"


@pytest.mark.asyncio
async def test_route_request_accepts_string_request_types(engine):
    response = await engine.route_request(RoutingRequest(type="outline", content="A heist in space"))

    assert response.metadata.provider == "writer"


@pytest.mark.asyncio
async def test_register_and_remove_provider_at_runtime(engine, recorded):
    extra = cloud("gpt", caps=capabilities("text_generation", offline=False))

    await engine.register_provider(extra, {"model": "gpt-test"})

    assert engine.get_provider("gpt") is extra
    assert extra.model == "gpt-test"
    with pytest.raises(DuplicateProviderError):
        await engine.register_provider(cloud("gpt"))

    assert await engine.remove_provider("gpt") is True
    assert await engine.remove_provider("gpt") is False
    assert extra.status is ProviderStatus.SHUTDOWN
    assert ("provider-removed", ("gpt",)) in recorded


@pytest.mark.asyncio
async def test_register_provider_wraps_initialization_failure(engine):
    with pytest.raises(ProviderInitializationError) as excinfo:
        await engine.register_provider(BrokenInitProvider("broken"))

    assert excinfo.value.provider_name == "broken"
    assert engine.get_provider("broken") is None


@pytest.mark.asyncio
async def test_priority_changes_affect_routing(engine):
    await engine.register_provider(cowriter("helper", priority=1, caps=capabilities("text_generation")))

    assert engine.set_provider_priority("helper", 20) is True
    assert engine.set_provider_priority("missing", 20) is False
    assert (await engine.generate_text("hello")).metadata.provider == "helper"


@pytest.mark.asyncio
async def test_diagnostics(engine):
    await engine.generate_text("hello")

    health = await engine.health_check()
    stats = engine.get_provider_stats()
    info = engine.get_provider_info("writer")
    recommendation = await engine.get_routing_recommendations(RequestType.OUTLINE)

    assert all(status.healthy for status in health.values())
    assert stats["ollama"]["routing"]["successes"] == 1
    assert stats["writer"]["routing"] is None
    assert info["type"] == "cowriter"
    assert engine.get_provider_info("missing") is None
    assert len(engine.get_all_provider_info()) == 2
    assert recommendation.recommended == ["writer"]
    assert [provider.name for provider in engine.get_providers_by_type("local")] == ["ollama"]
    assert [provider.name for provider in engine.get_providers_by_capability("outline_generation")] == ["writer"]
    assert (await engine.test_provider("ollama"))["success"] is True
    assert await engine.test_provider("missing") is None

    engine.clear_metrics()

    assert engine.get_request_metrics() == {}


@pytest.mark.asyncio
async def test_shutdown_is_best_effort_and_resets_state(events, caplog):
    config = StaticConfig(definitions=definitions(("stubborn", "local", 5), ("ollama", "local", 4)))
    engine = AIEngine(config, events, fake_factory())
    await engine.initialize()
    stubborn, ollama = engine.get_all_providers()
    await engine.generate_text("hello")

    assert engine.router.metrics is engine.metrics
    assert engine.get_request_metrics()["stubborn"]["successes"] == 1

    await engine.shutdown()

    assert engine.state is EngineState.SHUTDOWN
    assert "Error shutting down provider stubborn" in caplog.text
    assert ollama.status is ProviderStatus.SHUTDOWN
    assert ollama.shutdown_calls == 1
    assert len(engine.registry) == 0
    assert engine.router.get_request_metrics() == {}
    with pytest.raises(EngineNotInitializedError):
        await engine.generate_text("hello")

    await engine.shutdown()
    await engine.initialize()

    assert engine.state is EngineState.READY
    assert len(engine.get_all_providers()) == 2
    assert engine.get_request_metrics() == {}


@pytest.mark.asyncio
async def test_concurrent_initialize_calls_load_providers_once(engine_config, events, recorded):
    engine = AIEngine(engine_config, events, fake_factory())

    await asyncio.gather(engine.initialize(), engine.initialize(), engine.initialize())

    added = [args[0].name for event, args in recorded if event == PROVIDER_ADDED]
    assert added == ["writer", "ollama"]
    assert len(engine.get_all_providers()) == 2
    await engine.shutdown()


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_metrics_store(engine, recorded):
    responses = await asyncio.gather(*(engine.generate_text(f"line {index}") for index in range(50)))

    assert {response.metadata.provider for response in responses} == {"ollama"}
    metrics = engine.get_request_metrics()["ollama"]
    assert metrics["successes"] == 50
    assert metrics["total_requests"] == 50
    assert sum(1 for event, _ in recorded if event == REQUEST_COMPLETED) == 50
