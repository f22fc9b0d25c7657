"""BobbyBot Discord client.

Exactly two gateway listeners do any work: ``on_message`` feeds the command
router and ``on_interaction`` feeds the interaction router. Feature modules
never subscribe to events themselves; ``setup_hook`` builds them through the
registry and registers their handlers.

Slash commands are published to Discord from the interaction router's table
so they show up in the client, but the command tree refuses to execute them
(``interaction_check`` returns False) and the router runs them instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import Intents, app_commands

from bobbybot.core.command_router import CommandRouter
from bobbybot.core.interaction_router import InteractionRouter, SlashCommand
from bobbybot.core.ranks import RankClient
from bobbybot.core.registry import (
    FeatureContext,
    FeatureFactory,
    RegistryReport,
    register_features,
)
from bobbybot.features import (
    alerts,
    ask,
    economy,
    inhouse,
    leveling,
    ranks,
    thin_ice,
    valorant_team,
)
from bobbybot.features import help as help_feature

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bobbybot.config import Settings

logger = logging.getLogger(__name__)

# Registration order is processor order: moderation sees a message before chat does.
DEFAULT_FEATURES: list[FeatureFactory] = [
    alerts.setup,
    thin_ice.setup,
    leveling.setup,
    economy.setup,
    ranks.setup,
    valorant_team.setup,
    inhouse.setup,
    ask.setup,
    help_feature.setup,
]


class RoutedCommandTree(app_commands.CommandTree):
    """Publishes slash command definitions but leaves execution to the router."""

    async def interaction_check(self, interaction: discord.Interaction, /) -> bool:
        return False


def _definition(command: SlashCommand) -> app_commands.Command:
    if command.user_option is None:
        async def routed(interaction: discord.Interaction) -> None:
            """Executed by the interaction router, never by the tree."""

    else:
        @app_commands.describe(user=command.user_option)
        async def routed(
            interaction: discord.Interaction, user: discord.Member | None = None
        ) -> None:
            """Executed by the interaction router, never by the tree."""

    return app_commands.Command(
        name=command.name,
        description=command.description or command.name,
        callback=routed,
    )


class BobbyBot(discord.Client):
    """The BobbyBot Discord client."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        *,
        features: list[FeatureFactory] | None = None,
        rank_client: RankClient | None = None,
    ) -> None:
        intents = Intents.default()
        intents.message_content = True
        intents.members = True  # Needed for !awardall and display names

        super().__init__(intents=intents)
        self.settings = settings
        self.engine = engine
        self.features = DEFAULT_FEATURES if features is None else features
        self.rank_client = rank_client if rank_client is not None else RankClient(
            settings.henrik_api_key, settings.henrik_api_base_url
        )
        self.command_router = CommandRouter(
            settings.command_prefix, target_guild_id=settings.target_guild_id
        )
        self.interaction_router = InteractionRouter()
        self.tree = RoutedCommandTree(self)
        self.report: RegistryReport | None = None

    def load_features(self) -> RegistryReport:
        context = FeatureContext(
            settings=self.settings,
            engine=self.engine,
            client=self,
            rank_client=self.rank_client,
            command_router=self.command_router,
        )
        self.report = register_features(
            self.features, context, self.command_router, self.interaction_router
        )
        for command in self.interaction_router.slash_commands:
            self.tree.add_command(_definition(command))
        return self.report

    async def setup_hook(self) -> None:
        """Register features, then sync slash command definitions."""
        report = self.load_features()
        if report.skipped:
            logger.warning("features_skipped %s", report.skipped)
        if self.settings.discord_guild_id:
            guild = discord.Object(id=int(self.settings.discord_guild_id))
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info("discord_commands_synced guild_id=%s", self.settings.discord_guild_id)
        else:
            await self.tree.sync()
            logger.info("discord_commands_synced globally")

    async def on_ready(self) -> None:
        user = self.user
        logger.info(
            "discord_bot_ready user=%s guilds=%d",
            user.name if user else "unknown",
            len(self.guilds),
        )

    async def on_message(self, message: discord.Message) -> None:
        await self.command_router.dispatch(message)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        await self.interaction_router.dispatch(interaction)

    async def close(self) -> None:
        if self.report is not None:
            self.report.dispose_all()
        await self.rank_client.close()
        await self.engine.dispose()
        logger.info("discord_bot_closed")
        await super().close()
