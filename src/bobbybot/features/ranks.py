"""Riot account registration and rank lookup commands."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from pydantic import ValidationError

from bobbybot.core.command_router import Command
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.discord.embeds import COLOR_VALORANT
from bobbybot.discord.helpers import (
    db_session,
    get_member_rank,
    get_registered_account,
    target_user,
)
from bobbybot.models.valorant import RiotAccount

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bobbybot.core.ranks import RankClient

logger = logging.getLogger(__name__)

REGIONS = frozenset({"na", "eu", "ap", "kr", "latam", "br"})


class Ranks:
    def __init__(self, engine: AsyncEngine, rank_client: RankClient | None = None) -> None:
        self.engine = engine
        self.rank_client = rank_client

    async def register(self, message: discord.Message, args: list[str]) -> None:
        """``!valregister <name#tag> [region]``"""
        if message.guild is None:
            return
        if not args:
            await message.channel.send("Usage: `!valregister <name#tag> [region]`")
            return
        # Riot names may contain spaces; a trailing known region is split off.
        words = list(args)
        region = "na"
        if len(words) > 1 and words[-1].lower() in REGIONS:
            region = words.pop().lower()
        try:
            account = RiotAccount.parse(" ".join(words), region)
        except (ValueError, ValidationError):
            await message.channel.send("❌ Riot ID must look like `Name#TAG`.")
            return

        async with db_session(self.engine) as repo:
            await repo.upsert_registration(
                str(message.guild.id),
                str(message.author.id),
                account.name,
                account.tag,
                account.region,
            )
        logger.info(
            "valorant_registered guild=%s user=%s account=%s region=%s",
            message.guild.id,
            message.author.id,
            account,
            account.region,
        )
        await message.channel.send(
            f"✅ Registered **{account}** ({account.region.upper()}) for {message.author.mention}."
        )

    async def show_rank(self, message: discord.Message, args: list[str]) -> None:
        """``!valrank [@user]``"""
        if message.guild is None:
            return
        user = target_user(message)
        account = await get_registered_account(self.engine, message.guild.id, user.id)
        if account is None:
            await message.channel.send(
                f"❌ {user.mention} hasn't registered. Use `!valregister <name#tag> [region]`."
            )
            return
        rank = await get_member_rank(self.engine, self.rank_client, message.guild.id, user.id)
        embed = discord.Embed(title=str(account), color=COLOR_VALORANT)
        if rank is None:
            embed.description = "Rank unavailable right now."
        else:
            embed.add_field(name="Rank", value=rank.name, inline=True)
            embed.add_field(name="RR", value=str(rank.rr), inline=True)
        embed.set_footer(text=f"Region: {account.region.upper()}")
        await message.channel.send(embed=embed)


def setup(context: FeatureContext) -> Feature:
    ranks = Ranks(context.engine, context.rank_client)
    return Feature(
        name="ranks",
        commands=[
            Command(
                "valregister",
                ranks.register,
                usage="valregister <name#tag> [region]",
                description="Link your Riot account for rank lookups",
            ),
            Command(
                "valrank",
                ranks.show_rank,
                usage="valrank [@user]",
                description="Show a registered member's Valorant rank",
            ),
        ],
    )
