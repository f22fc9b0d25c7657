"""Ten-player Valorant in-house lobbies with rank-balanced teams."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import discord

from bobbybot.core.balancing import balance_teams
from bobbybot.core.command_router import Command
from bobbybot.core.cooldowns import CooldownTracker
from bobbybot.core.inhouse import INHOUSE_SIZE, MAX_INHOUSES_PER_HOST, Inhouse, InhouseStore
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.core.teams import TeamError
from bobbybot.core.timers import TimerCallback
from bobbybot.discord.embeds import build_balanced_teams_embed, build_inhouse_embed
from bobbybot.discord.helpers import as_member, rate_member, send_ephemeral

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bobbybot.core.ranks import RankClient

logger = logging.getLogger(__name__)

INHOUSE_EXPIRY_SECONDS = 30 * 60
INHOUSE_CREATE_COOLDOWN_SECONDS = 60
INHOUSE_CLEANUP_SECONDS = 10 * 60

JOIN = "inhouse_join_"
LEAVE = "inhouse_leave_"
BALANCE = "inhouse_balance_"
CANCEL = "inhouse_cancel_"

INHOUSE_GONE_MESSAGE = "❌ This in-house no longer exists."


class Inhouses:
    def __init__(
        self,
        engine: AsyncEngine,
        client: discord.Client | None = None,
        *,
        rank_client: RankClient | None = None,
        store: InhouseStore | None = None,
        cooldowns: CooldownTracker | None = None,
    ) -> None:
        self.engine = engine
        self.client = client
        self.rank_client = rank_client
        self.store = store if store is not None else InhouseStore()
        if cooldowns is None:
            cooldowns = CooldownTracker(INHOUSE_CREATE_COOLDOWN_SECONDS)
        self.cooldowns = cooldowns

    def build_view(self, inhouse: Inhouse) -> discord.ui.View:
        view = discord.ui.View(timeout=None)
        view.add_item(discord.ui.Button(
            label="Join",
            style=discord.ButtonStyle.success,
            custom_id=f"{JOIN}{inhouse.id}",
            disabled=inhouse.is_full,
        ))
        view.add_item(discord.ui.Button(
            label="Leave", style=discord.ButtonStyle.secondary, custom_id=f"{LEAVE}{inhouse.id}"
        ))
        if inhouse.is_full:
            view.add_item(discord.ui.Button(
                label="Balance Teams",
                style=discord.ButtonStyle.primary,
                custom_id=f"{BALANCE}{inhouse.id}",
            ))
        view.add_item(discord.ui.Button(
            label="Cancel", style=discord.ButtonStyle.danger, custom_id=f"{CANCEL}{inhouse.id}"
        ))
        return view

    # --- Text command ---

    async def open_inhouse(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        host_id = message.author.id
        if len(self.store.hosted_by(host_id)) >= MAX_INHOUSES_PER_HOST:
            await message.channel.send(
                "❌ You already have an active in-house. Cancel it before starting another."
            )
            return
        remaining = self.cooldowns.remaining(host_id)
        if remaining > 0:
            await message.channel.send(
                f"⏳ Please wait {int(remaining) + 1}s before creating another in-house."
            )
            return

        created = datetime.now(UTC)
        inhouse = Inhouse(
            id=f"{int(created.timestamp() * 1000)}_{host_id}",
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            host=as_member(message.author),
            created_at=created,
        )
        sent = await message.channel.send(
            embed=build_inhouse_embed(inhouse), view=self.build_view(inhouse)
        )
        inhouse.message_id = sent.id
        self.store.add(inhouse)
        self.cooldowns.touch(host_id)
        inhouse.timers.schedule("expire", INHOUSE_EXPIRY_SECONDS, self._expiry(inhouse.id))
        logger.info(
            "inhouse_created inhouse=%s guild=%s host=%s", inhouse.id, message.guild.id, host_id
        )

    async def _delete_message(self, inhouse: Inhouse) -> None:
        if self.client is None or inhouse.message_id is None:
            return
        channel = self.client.get_channel(inhouse.channel_id)
        if channel is None:
            return
        try:
            await channel.get_partial_message(inhouse.message_id).delete()
        except discord.HTTPException as exc:
            logger.info("inhouse_message_delete_failed inhouse=%s err=%s", inhouse.id, exc)

    def _expiry(self, inhouse_id: str) -> TimerCallback:
        async def expire() -> None:
            inhouse = self.store.get(inhouse_id)
            if inhouse is None or inhouse.is_full:
                return
            self.store.remove(inhouse_id)
            logger.info("inhouse_expired inhouse=%s size=%d", inhouse_id, inhouse.size)
            await self._delete_message(inhouse)

        return expire

    def _cleanup(self, inhouse_id: str) -> TimerCallback:
        async def cleanup() -> None:
            inhouse = self.store.remove(inhouse_id)
            if inhouse is None:
                return
            logger.info("inhouse_cleaned_up inhouse=%s", inhouse_id)
            await self._delete_message(inhouse)

        return cleanup

    # --- Buttons ---

    async def _lookup(self, interaction: discord.Interaction, prefix: str) -> Inhouse | None:
        custom_id = str((interaction.data or {}).get("custom_id", ""))
        inhouse = self.store.get(custom_id[len(prefix) :])
        if inhouse is None:
            await send_ephemeral(interaction, INHOUSE_GONE_MESSAGE)
        return inhouse

    async def _rerender(self, interaction: discord.Interaction, inhouse: Inhouse) -> None:
        await interaction.response.edit_message(
            embed=build_inhouse_embed(inhouse), view=self.build_view(inhouse)
        )

    async def on_join(self, interaction: discord.Interaction) -> None:
        inhouse = await self._lookup(interaction, JOIN)
        if inhouse is None:
            return
        try:
            inhouse.join(as_member(interaction.user))
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        await self._rerender(interaction, inhouse)
        if inhouse.is_full:
            inhouse.timers.cancel("expire")
            await interaction.followup.send(
                f"✅ The in-house is full! {inhouse.host.mention}, click **Balance Teams**."
            )

    async def on_leave(self, interaction: discord.Interaction) -> None:
        inhouse = await self._lookup(interaction, LEAVE)
        if inhouse is None:
            return
        try:
            inhouse.leave(interaction.user.id)
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        inhouse.timers.cancel("cleanup")
        await self._rerender(interaction, inhouse)
        if not inhouse.timers.is_pending("expire"):
            inhouse.timers.schedule("expire", INHOUSE_EXPIRY_SECONDS, self._expiry(inhouse.id))

    async def on_balance(self, interaction: discord.Interaction) -> None:
        inhouse = await self._lookup(interaction, BALANCE)
        if inhouse is None:
            return
        if interaction.user.id != inhouse.host.user_id:
            await send_ephemeral(interaction, "❌ Only the host can balance teams!")
            return
        if not inhouse.is_full:
            await send_ephemeral(
                interaction,
                f"❌ Need {INHOUSE_SIZE} players to balance ({inhouse.size}/{INHOUSE_SIZE}).",
            )
            return

        await interaction.response.defer()
        players = [
            await rate_member(self.engine, self.rank_client, inhouse.guild_id, member)
            for member in inhouse.lobby
        ]
        inhouse.teams = balance_teams(players)
        logger.info(
            "inhouse_balanced inhouse=%s team1_mmr=%d team2_mmr=%d",
            inhouse.id,
            inhouse.teams.team1_mmr,
            inhouse.teams.team2_mmr,
        )
        inhouse.timers.schedule("cleanup", INHOUSE_CLEANUP_SECONDS, self._cleanup(inhouse.id))
        await interaction.followup.send(embed=build_balanced_teams_embed(inhouse.teams))

    async def on_cancel(self, interaction: discord.Interaction) -> None:
        inhouse = await self._lookup(interaction, CANCEL)
        if inhouse is None:
            return
        if interaction.user.id != inhouse.host.user_id:
            await send_ephemeral(interaction, "❌ Only the host can cancel the in-house!")
            return
        self.store.remove(inhouse.id)
        await interaction.response.edit_message(
            content="❌ In-house cancelled by the host.", embed=None, view=None
        )
        logger.info("inhouse_cancelled inhouse=%s", inhouse.id)

    def dispose(self) -> None:
        self.store.dispose_all()


def setup(context: FeatureContext) -> Feature:
    inhouses = Inhouses(context.engine, context.client, rank_client=context.rank_client)
    return Feature(
        name="inhouse",
        commands=[
            Command(
                "inhouse",
                inhouses.open_inhouse,
                aliases=("valinhouse",),
                usage="inhouse",
                description="Start a 10-player in-house with balanced teams",
            ),
        ],
        buttons={
            JOIN: inhouses.on_join,
            LEAVE: inhouses.on_leave,
            BALANCE: inhouses.on_balance,
            CANCEL: inhouses.on_cancel,
        },
        dispose=inhouses.dispose,
    )
