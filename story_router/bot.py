"""Discord slash-command front-end for the story router."""
from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands
from dotenv import load_dotenv

from .config import JsonRouterConfig, configure_logging
from .engine import AIEngine
from .errors import RouterError
from .events import PROVIDER_ADDED, PROVIDER_REMOVED, REQUEST_COMPLETED, REQUEST_FAILED, EventBus
from .models import RequestOptions, RequestType, Response, RoutingRequest, StoryContext

DEFAULT_RATE_LIMIT = 5
DEFAULT_RATE_WINDOW = 60
EMBED_LIMIT = 3900

logger = logging.getLogger("story-router")


class SimpleRateLimiter:
    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = limit
        self.window = window_seconds
        self._events: Dict[str, List[float]] = {}
        self._lock = asyncio.Lock()

    async def check(self, key: str) -> bool:
        async with self._lock:
            now = time.monotonic()
            events = [stamp for stamp in self._events.get(key, []) if now - stamp < self.window]
            if len(events) >= self.limit:
                self._events[key] = events
                return False
            events.append(now)
            self._events[key] = events
            return True


@dataclass
class BotConfig:
    token: str
    guild_id: Optional[int]
    rate_limit: int
    rate_window: int

    @classmethod
    def from_env(cls) -> "BotConfig":
        token = os.getenv("DISCORD_BOT_TOKEN")
        if not token:
            raise RuntimeError("DISCORD_BOT_TOKEN is required")
        guild_id = os.getenv("DISCORD_GUILD_ID")
        return cls(
            token=token,
            guild_id=int(guild_id) if guild_id else None,
            rate_limit=int(os.getenv("AI_RATE_LIMIT", DEFAULT_RATE_LIMIT)),
            rate_window=int(os.getenv("AI_RATE_WINDOW", DEFAULT_RATE_WINDOW)),
        )


def parse_genres(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [genre.strip() for genre in raw.split(",") if genre.strip()]


def attach_event_logging(events: EventBus) -> None:
    events.subscribe(PROVIDER_ADDED, lambda provider: logger.info("Provider online: %s", provider.name))
    events.subscribe(PROVIDER_REMOVED, lambda provider_id: logger.info("Provider removed: %s", provider_id))
    events.subscribe(
        REQUEST_COMPLETED,
        lambda request, response, provider: logger.info(
            "%s served by %s in %.2fs", request.type.value, provider.name, response.metadata.response_time
        ),
    )
    events.subscribe(REQUEST_FAILED, lambda request, error: logger.warning("%s failed: %s", request.type.value, error))


def build_embed(title: str, text: str, response: Response) -> discord.Embed:
    embed = discord.Embed(title=title, colour=discord.Colour.dark_teal())
    embed.add_field(name="Provider", value=response.metadata.provider, inline=True)
    embed.add_field(name="Model", value=response.metadata.model, inline=True)
    embed.add_field(name="Confidence", value=f"{response.confidence:.0%}", inline=True)
    embed.description = text if len(text) <= EMBED_LIMIT else text[:1900] + "…"
    return embed


class StoryRouterBot(commands.Bot):
    def __init__(self, config: BotConfig, engine: AIEngine) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.engine = engine
        self.rate_limiter = SimpleRateLimiter(config.rate_limit, config.rate_window)
        register_commands(self)

    async def setup_hook(self) -> None:  # type: ignore[override]
        await self.engine.initialize()
        if not self.engine.get_all_providers():
            logger.warning("No AI providers are online; commands will fail until one is registered.")
        if self.config.guild_id:
            guild = discord.Object(id=self.config.guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
        else:
            await self.tree.sync()

    async def close(self) -> None:
        await self.engine.shutdown()
        await super().close()

    async def run_request(self, interaction: discord.Interaction, request: RoutingRequest, title: str) -> None:
        if not await self.rate_limiter.check(str(interaction.channel_id)):
            await interaction.response.send_message("Channel rate limit exceeded. Try again shortly.", ephemeral=True)
            return
        await interaction.response.defer(thinking=True)
        try:
            response = await self.engine.route_request(request)
        except RouterError as exc:
            logger.exception("Routing failed for %s", request.type.value)
            await interaction.followup.send(f"Request failed: {exc}", ephemeral=True)
            return
        except Exception:
            logger.exception("Unexpected failure routing %s", request.type.value)
            await interaction.followup.send("Unexpected error while contacting the providers.", ephemeral=True)
            return
        text = response.content.strip() or "(empty response)"
        if response.data is not None:
            text = json.dumps(response.data, indent=2, ensure_ascii=False)
        embed = build_embed(title, text, response)
        if len(text) > EMBED_LIMIT:
            file = discord.File(io.StringIO(text), filename="story-router-response.txt")
            await interaction.followup.send(embed=embed, file=file)
        else:
            await interaction.followup.send(embed=embed)


def register_commands(bot: StoryRouterBot) -> None:
    async def provider_autocomplete(interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
        suggestions = []
        for provider in bot.engine.registry.get_all_providers():
            if current.lower() in provider.name.lower():
                suggestions.append(app_commands.Choice(name=provider.name, value=provider.name))
        return suggestions[:25]

    @bot.tree.command(name="write", description="Generate prose with the best available provider.")
    @app_commands.describe(
        prompt="What to write",
        genre="Comma separated genres",
        audience="Target audience, e.g. young-adult",
        provider="Pin a specific provider",
        offline="Only use providers that run without the network",
        max_tokens="Maximum response tokens",
    )
    @app_commands.autocomplete(provider=provider_autocomplete)
    async def write(
        interaction: discord.Interaction,
        prompt: str,
        genre: Optional[str] = None,
        audience: Optional[str] = None,
        provider: Optional[str] = None,
        offline: bool = False,
        max_tokens: app_commands.Range[int, 32, 4000] = 800,
    ) -> None:
        request = RoutingRequest(
            type=RequestType.PROSE_GENERATION,
            content=prompt,
            context=StoryContext(genre=parse_genres(genre), target_audience=audience or ""),
            options=RequestOptions(preferred_provider=provider, max_tokens=max_tokens, require_offline=offline),
        )
        await bot.run_request(interaction, request, "Prose")

    @bot.tree.command(name="analyze", description="Analyze a passage for structure, pacing and consistency.")
    @app_commands.describe(text="Passage to analyze", kind="Kind of analysis", offline="Keep the text on local providers")
    @app_commands.choices(
        kind=[
            app_commands.Choice(name="Story analysis", value=RequestType.STORY_ANALYSIS.value),
            app_commands.Choice(name="Plot holes", value=RequestType.PLOT_HOLE_DETECTION.value),
            app_commands.Choice(name="Pacing", value=RequestType.PACING_ANALYSIS.value),
            app_commands.Choice(name="Consistency", value=RequestType.CONSISTENCY_CHECK.value),
        ]
    )
    async def analyze(
        interaction: discord.Interaction,
        text: str,
        kind: Optional[app_commands.Choice[str]] = None,
        offline: bool = False,
    ) -> None:
        request_type = RequestType(kind.value) if kind else RequestType.STORY_ANALYSIS
        request = RoutingRequest(type=request_type, content=text, options=RequestOptions(require_offline=offline))
        await bot.run_request(interaction, request, request_type.value.replace("_", " ").title())

    @bot.tree.command(name="character", description="Build a character profile from a few traits.")
    @app_commands.describe(traits="Free text or a JSON object of traits", genre="Comma separated genres")
    async def character(interaction: discord.Interaction, traits: str, genre: Optional[str] = None) -> None:
        request = RoutingRequest(
            type=RequestType.CHARACTER_ANALYSIS,
            content=traits,
            context=StoryContext(genre=parse_genres(genre)),
        )
        await bot.run_request(interaction, request, "Character")

    @bot.tree.command(name="providers", description="Show provider health and routing metrics.")
    async def providers(interaction: discord.Interaction) -> None:
        await interaction.response.defer(thinking=True, ephemeral=True)
        health = await bot.engine.health_check()
        stats = bot.engine.get_provider_stats()
        embed = discord.Embed(title="AI providers", colour=discord.Colour.dark_teal())
        for name, status in health.items():
            routing: Dict[str, Any] = stats.get(name, {}).get("routing") or {}
            summary = [
                "online" if status.healthy else f"offline ({status.details})",
                f"priority {stats.get(name, {}).get('priority')}",
            ]
            if routing:
                summary.append(f"{routing['success_rate']:.0%} of {routing['total_requests']} requests")
            embed.add_field(name=name, value=" · ".join(summary), inline=False)
        if not health:
            embed.description = "No providers registered."
        await interaction.followup.send(embed=embed, ephemeral=True)

    @bot.tree.command(name="route", description="Explain which provider would handle a request type.")
    @app_commands.describe(kind="Request type", genre="Comma separated genres", audience="Target audience")
    @app_commands.choices(kind=[app_commands.Choice(name=item.value, value=item.value) for item in RequestType][:25])
    async def route(
        interaction: discord.Interaction,
        kind: app_commands.Choice[str],
        genre: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> None:
        context = StoryContext(genre=parse_genres(genre), target_audience=audience or "")
        recommendation = await bot.engine.get_routing_recommendations(kind.value, context)
        if not recommendation.recommended:
            await interaction.response.send_message(f"No provider can handle {kind.value} right now.", ephemeral=True)
            return
        embed = discord.Embed(title=f"Routing for {kind.value}", colour=discord.Colour.dark_teal())
        for name in recommendation.recommended + recommendation.alternatives:
            label = "recommended" if name in recommendation.recommended else "fallback"
            embed.add_field(name=f"{name} ({label})", value="\n".join(recommendation.reasons[name]), inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def main() -> None:
    load_dotenv()
    configure_logging()
    events = EventBus()
    attach_event_logging(events)
    engine = AIEngine(JsonRouterConfig.from_env(), events)
    bot = StoryRouterBot(BotConfig.from_env(), engine)
    async with bot:
        await bot.start(bot.config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
