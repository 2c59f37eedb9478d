"""Tests for the Discord front-end helpers."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from story_router.bot import BotConfig, SimpleRateLimiter, StoryRouterBot, attach_event_logging, parse_genres
from story_router.errors import NoSuitableProviderError
from story_router.events import PROVIDER_ADDED, REQUEST_COMPLETED, REQUEST_FAILED, EventBus
from story_router.models import RequestType, RoutingRequest


@pytest.mark.asyncio
async def test_rate_limiter_blocks_after_limit_per_key():
    limiter = SimpleRateLimiter(limit=2, window_seconds=60)

    assert await limiter.check("channel-1") is True
    assert await limiter.check("channel-1") is True
    assert await limiter.check("channel-1") is False
    assert await limiter.check("channel-2") is True


def test_bot_config_requires_token(monkeypatch):
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with pytest.raises(RuntimeError, match="DISCORD_BOT_TOKEN"):
        BotConfig.from_env()


def test_bot_config_reads_environment(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("DISCORD_GUILD_ID", "1234")
    monkeypatch.setenv("AI_RATE_LIMIT", "3")
    monkeypatch.delenv("AI_RATE_WINDOW", raising=False)

    config = BotConfig.from_env()

    assert config.guild_id == 1234
    assert config.rate_limit == 3
    assert config.rate_window == 60


def test_parse_genres_trims_and_drops_blanks():
    assert parse_genres(" fantasy, ,science fiction ") == ["fantasy", "science fiction"]
    assert parse_genres(None) == []


class FakeInteractionResponse:
    def __init__(self) -> None:
        self.deferred = False
        self.messages = []

    async def defer(self, **kwargs) -> None:
        self.deferred = True

    async def send_message(self, content, **kwargs) -> None:
        self.messages.append(content)


class FakeFollowup:
    def __init__(self) -> None:
        self.messages = []

    async def send(self, content=None, **kwargs) -> None:
        self.messages.append((content, kwargs))


class FakeInteraction:
    channel_id = 42

    def __init__(self) -> None:
        self.response = FakeInteractionResponse()
        self.followup = FakeFollowup()


class CrashingEngine:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def route_request(self, request):
        raise self.error


def fake_bot(error: Exception) -> SimpleNamespace:
    return SimpleNamespace(engine=CrashingEngine(error), rate_limiter=SimpleRateLimiter(limit=5, window_seconds=60))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, reply",
    [
        (NoSuitableProviderError("outline"), "Request failed: No suitable AI provider"),
        (KeyError("surprise"), "Unexpected error while contacting the providers."),
    ],
)
async def test_run_request_always_answers_a_deferred_interaction(error, reply):
    interaction = FakeInteraction()
    request = RoutingRequest(type=RequestType.OUTLINE, content="A heist in space")

    await StoryRouterBot.run_request(fake_bot(error), interaction, request, "Outline")

    assert interaction.response.deferred is True
    content, kwargs = interaction.followup.messages[-1]
    assert content.startswith(reply)
    assert kwargs["ephemeral"] is True


def test_event_logging_subscribes_to_lifecycle_events():
    events = EventBus()

    attach_event_logging(events)

    assert events.subscriber_count(PROVIDER_ADDED) == 1
    assert events.subscriber_count(REQUEST_COMPLETED) == 1
    assert events.subscriber_count(REQUEST_FAILED) == 1
