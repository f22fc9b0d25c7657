"""Chat XP and levels."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

import discord

from bobbybot.core.command_router import Command
from bobbybot.core.cooldowns import CooldownTracker, PeriodicPrune
from bobbybot.core.interaction_router import SlashCommand
from bobbybot.core.levels import (
    XP_COOLDOWN_SECONDS,
    XP_PER_MESSAGE_MAX,
    XP_PER_MESSAGE_MIN,
    level_for_xp,
)
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.discord.embeds import build_level_embed, build_level_leaderboard_embed
from bobbybot.discord.helpers import db_session, target_user

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

LEADERBOARD_LIMIT = 10


class Leveling:
    def __init__(
        self,
        engine: AsyncEngine,
        prefix: str = "!",
        *,
        cooldowns: CooldownTracker | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.engine = engine
        self.prefix = prefix
        if cooldowns is None:
            cooldowns = CooldownTracker(XP_COOLDOWN_SECONDS)
        self.cooldowns = cooldowns
        self.rng = rng if rng is not None else random.Random()
        self._prune = PeriodicPrune(cooldowns.prune, clock=cooldowns.clock)

    async def award_xp(self, message: discord.Message) -> None:
        """Message processor: grant XP for chatting, at most once per cooldown."""
        if message.guild is None or (message.content or "").startswith(self.prefix):
            return
        if dropped := self._prune():
            logger.debug("xp_cooldowns_pruned count=%d", dropped)
        key = (message.guild.id, message.author.id)
        if not self.cooldowns.try_acquire(key):
            return

        amount = self.rng.randint(XP_PER_MESSAGE_MIN, XP_PER_MESSAGE_MAX)
        async with db_session(self.engine) as repo:
            new_xp = await repo.add_xp(str(message.guild.id), str(message.author.id), amount)

        old_level = level_for_xp(new_xp - amount)
        new_level = level_for_xp(new_xp)
        if new_level > old_level:
            logger.info(
                "level_up guild=%s user=%s level=%d xp=%d",
                message.guild.id,
                message.author.id,
                new_level,
                new_xp,
            )
            await message.channel.send(
                f"🎉 {message.author.mention} reached **level {new_level}**!"
            )

    async def _level_embed(self, guild_id: int, user: discord.abc.User) -> discord.Embed:
        async with db_session(self.engine) as repo:
            row = await repo.get_user(str(guild_id), str(user.id))
        xp = row.xp if row else 0
        messages = row.message_count if row else 0
        return build_level_embed(getattr(user, "display_name", user.name), xp, messages)

    async def level(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        embed = await self._level_embed(message.guild.id, target_user(message))
        await message.channel.send(embed=embed)

    async def leaderboard(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        guild = message.guild
        async with db_session(self.engine) as repo:
            rows = await repo.get_top_xp(str(guild.id), limit=LEADERBOARD_LIMIT)
        entries = []
        for row in rows:
            member = guild.get_member(int(row.user_id))
            entries.append((member.display_name if member else f"<@{row.user_id}>", row.xp))
        await message.channel.send(embed=build_level_leaderboard_embed(entries))

    async def rank_slash(self, interaction: discord.Interaction) -> None:
        if interaction.guild is None:
            await interaction.response.send_message("Use this in a server.", ephemeral=True)
            return
        embed = await self._level_embed(interaction.guild.id, interaction.user)
        await interaction.response.send_message(embed=embed)


def setup(context: FeatureContext) -> Feature:
    leveling = Leveling(context.engine, context.settings.command_prefix)
    return Feature(
        name="leveling",
        commands=[
            Command(
                "level",
                leveling.level,
                aliases=("rank", "xp"),
                usage="level [@user]",
                description="Show level and XP progress",
            ),
            Command(
                "leveltop",
                leveling.leaderboard,
                aliases=("leaderboard",),
                usage="leveltop",
                description="Top 10 members by XP",
            ),
        ],
        processors=[leveling.award_xp],
        slash_commands=[SlashCommand("rank", leveling.rank_slash, "Show your level and XP")],
    )
