"""Bobby Bucks ledger commands.

Balances live in the ``users`` table. Spending moves money to the guild's
house account. Awards need the configured admin role, or the Administrator
permission when no role is configured.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from bobbybot.core.command_router import Command
from bobbybot.core.interaction_router import SlashCommand
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.db.repository import InsufficientFundsError
from bobbybot.discord.embeds import (
    CURRENCY,
    build_balance_embed,
    build_baltop_embed,
    build_declined_embed,
    build_economy_embed,
    build_spend_embed,
    format_amount,
)
from bobbybot.discord.helpers import db_session, has_admin_access, parse_amount, target_user

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

BALTOP_LIMIT = 10


def _display_name(guild: discord.Guild | None, user_id: str) -> str:
    if guild is not None:
        member = guild.get_member(int(user_id))
        if member is not None:
            return member.display_name
    return f"<@{user_id}>"


class Economy:
    """Command handlers for the economy feature."""

    def __init__(self, engine: AsyncEngine, admin_role_id: int | None = None) -> None:
        self.engine = engine
        self.admin_role_id = admin_role_id

    async def _baltop_embed(self, guild: discord.Guild) -> discord.Embed:
        guild_id = str(guild.id)
        async with db_session(self.engine) as repo:
            rows = await repo.get_top_balances(guild_id, limit=BALTOP_LIMIT)
            total = await repo.get_total_economy(guild_id)
            house = await repo.get_house_balance(guild_id)
        entries = [(_display_name(guild, r.user_id), r.balance) for r in rows]
        return build_baltop_embed(entries, total, house)

    async def _balance_embed(self, guild: discord.Guild, user: discord.abc.User) -> discord.Embed:
        async with db_session(self.engine) as repo:
            balance = await repo.get_balance(str(guild.id), str(user.id))
            rank = await repo.get_balance_rank(str(guild.id), str(user.id))
        return build_balance_embed(getattr(user, "display_name", user.name), balance, rank)

    # --- Text commands ---

    async def balance(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        embed = await self._balance_embed(message.guild, target_user(message))
        await message.channel.send(embed=embed)

    async def baltop(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        await message.channel.send(embed=await self._baltop_embed(message.guild))

    async def award(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        if not has_admin_access(message.author, self.admin_role_id):
            await message.channel.send("❌ You don't have permission to award Bobby Bucks.")
            return
        amount = parse_amount(args[-1]) if args else None
        if not message.mentions or amount is None:
            await message.channel.send("Usage: `!award @user <amount>`")
            return
        recipient = message.mentions[0]
        async with db_session(self.engine) as repo:
            new_balance = await repo.add_balance(str(message.guild.id), str(recipient.id), amount)
        logger.info(
            "economy_award guild=%s admin=%s recipient=%s amount=%d",
            message.guild.id,
            message.author.id,
            recipient.id,
            amount,
        )
        await message.channel.send(
            f"✅ Awarded **{format_amount(amount)}** {CURRENCY} to {recipient.mention}. "
            f"New balance: **{format_amount(new_balance)}**."
        )

    async def awardall(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        if not has_admin_access(message.author, self.admin_role_id):
            await message.channel.send("❌ You don't have permission to award Bobby Bucks.")
            return
        amount = parse_amount(args[0]) if args else None
        if amount is None:
            await message.channel.send("Usage: `!awardall <amount>`")
            return
        guild_id = str(message.guild.id)
        recipients = {str(m.id) for m in message.guild.members if not m.bot}
        async with db_session(self.engine) as repo:
            recipients.update(await repo.get_guild_user_ids(guild_id))
            for user_id in sorted(recipients):
                await repo.add_balance(guild_id, user_id, amount)
        logger.info(
            "economy_award_all guild=%s admin=%s recipients=%d amount=%d",
            guild_id,
            message.author.id,
            len(recipients),
            amount,
        )
        await message.channel.send(
            f"✅ Awarded **{format_amount(amount)}** {CURRENCY} to {len(recipients)} members."
        )

    async def spend(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        amount = parse_amount(args[0]) if args else None
        if amount is None:
            await message.channel.send("Usage: `!spend <amount>`")
            return
        guild_id = str(message.guild.id)
        name = message.author.display_name
        try:
            async with db_session(self.engine) as repo:
                new_balance = await repo.spend(guild_id, str(message.author.id), amount)
                await repo.add_house(guild_id, amount)
        except InsufficientFundsError as exc:
            await message.channel.send(embed=build_declined_embed(name, amount, exc.balance))
            return
        await message.channel.send(embed=build_spend_embed(name, amount, new_balance))

    async def economy(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        guild_id = str(message.guild.id)
        async with db_session(self.engine) as repo:
            total = await repo.get_total_economy(guild_id)
            house = await repo.get_house_balance(guild_id)
            holders = await repo.count_holders(guild_id)
        await message.channel.send(embed=build_economy_embed(total, house, holders))

    # --- Slash commands ---

    async def balance_slash(self, interaction: discord.Interaction) -> None:
        if interaction.guild is None:
            await interaction.response.send_message("Use this in a server.", ephemeral=True)
            return
        user = getattr(interaction.namespace, "user", None) or interaction.user
        embed = await self._balance_embed(interaction.guild, user)
        await interaction.response.send_message(embed=embed)

    async def baltop_slash(self, interaction: discord.Interaction) -> None:
        if interaction.guild is None:
            await interaction.response.send_message("Use this in a server.", ephemeral=True)
            return
        await interaction.response.defer()
        await interaction.followup.send(embed=await self._baltop_embed(interaction.guild))


def setup(context: FeatureContext) -> Feature:
    economy = Economy(context.engine, context.settings.economy_admin_role)
    return Feature(
        name="economy",
        commands=[
            Command(
                "balance",
                economy.balance,
                aliases=("bal",),
                usage="balance [@user]",
                description="Show a Bobby Bucks balance",
            ),
            Command(
                "baltop",
                economy.baltop,
                aliases=("balancetop",),
                usage="baltop",
                description="Top 10 richest members",
            ),
            Command(
                "award",
                economy.award,
                usage="award @user <amount>",
                description="[Admin] Give Bobby Bucks to a member",
            ),
            Command(
                "awardall",
                economy.awardall,
                usage="awardall <amount>",
                description="[Admin] Give Bobby Bucks to everyone",
            ),
            Command(
                "spend",
                economy.spend,
                usage="spend <amount>",
                description="Spend Bobby Bucks (they go to the house)",
            ),
            Command(
                "economy",
                economy.economy,
                usage="economy",
                description="Server economy totals",
            ),
        ],
        slash_commands=[
            SlashCommand(
                "balance",
                economy.balance_slash,
                "Check your Bobby Bucks balance",
                user_option="Member whose balance to show",
            ),
            SlashCommand("baltop", economy.baltop_slash, "Top 10 richest members"),
        ],
    )
