"""Valorant five-stack builder.

A team is opened with ``!valorantteam [timer:<hours>]`` or by mentioning the
Valorant role. The team message carries buttons whose custom ids end in the
team id (``valorant_join_<team id>`` and so on). Each team owns its timers:

- ``refresh``: re-render the message every 10 minutes while not full.
- ``warning`` / ``disband``: with no event time, warn at 25 minutes and
  disband at 30 if the team is still not full.
- ``event``: ping the roster at the target time. The leader can set or move
  it later with the Set Timer button, which also stops the disband countdown.
- ``cleanup``: remove the team some minutes after it completes or closes.

Removing a team from the store disposes all of them.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import discord
from sqlalchemy.exc import SQLAlchemyError

from bobbybot.core.command_router import Command
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.core.teams import MIN_CLOSE_TEAM_SIZE, TEAM_SIZE, Team, TeamError, TeamStore
from bobbybot.core.timers import TimerGroup
from bobbybot.discord.embeds import (
    build_team_closed_embed,
    build_team_complete_embed,
    build_team_disbanded_embed,
    build_team_embed,
)
from bobbybot.discord.helpers import as_member, db_session, get_member_rank, send_ephemeral
from bobbybot.models.valorant import rank_name

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bobbybot.core.ranks import RankClient

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_SECONDS = 10 * 60
DISBAND_WARNING_SECONDS = 25 * 60
DISBAND_SECONDS = 30 * 60
COMPLETED_CLEANUP_SECONDS = 10 * 60
CLOSE_CLEANUP_SECONDS = 5 * 60
DISBAND_DELETE_SECONDS = 5
MAX_TIMER_HOURS = 24
MAX_TEAM_NAME_LENGTH = 32

JOIN = "valorant_join_"
LEAVE = "valorant_leave_"
JOIN_WAITLIST = "valorant_joinwaitlist_"
LEAVE_WAITLIST = "valorant_leavewaitlist_"
DISBAND = "valorant_disband_"
CLOSE = "valorant_close_"
SET_NAME = "valorant_setname_"
NAME_MODAL = "valorant_name_modal_"
NAME_INPUT = "team_name"
SET_TIMER = "valorant_settimer_"
TIMER_MODAL = "valorant_timer_modal_"
TIMER_INPUT = "timer_hours"

TEAM_GONE_MESSAGE = "❌ Team no longer exists."

_TIMER_RE = re.compile(r"timer:(\d+(?:\.\d+)?)", re.IGNORECASE)


def parse_timer_hours(content: str) -> float | None:
    """Hours from a ``timer:<hours>`` token, or None if absent."""
    match = _TIMER_RE.search(content)
    return float(match.group(1)) if match else None


def modal_value(interaction: discord.Interaction, custom_id: str) -> str:
    """Submitted value of one text input in a modal interaction."""
    for row in (interaction.data or {}).get("components", []):
        for component in row.get("components", []):
            if component.get("custom_id") == custom_id:
                return str(component.get("value") or "")
    return ""


def average_rank(tiers: list[int]) -> str:
    if not tiers:
        return "N/A"
    return rank_name(round(sum(tiers) / len(tiers)))


class ValorantTeams:
    """Team builder handlers plus the store of active teams."""

    def __init__(
        self,
        engine: AsyncEngine,
        client: discord.Client | None = None,
        *,
        rank_client: RankClient | None = None,
        role_id: int | None = None,
        prefix: str = "!",
        store: TeamStore | None = None,
    ) -> None:
        self.engine = engine
        self.client = client
        self.rank_client = rank_client
        self.role_id = role_id
        self.prefix = prefix
        self.store = store if store is not None else TeamStore()
        # Deferred message deletions for teams that are already gone.
        self.timers = TimerGroup(owner="valorant_team")

    # --- Rendering ---

    def build_view(self, team: Team) -> discord.ui.View:
        view = discord.ui.View(timeout=None)
        if team.is_full:
            view.add_item(discord.ui.Button(
                label="Join Waitlist",
                style=discord.ButtonStyle.primary,
                custom_id=f"{JOIN_WAITLIST}{team.id}",
                disabled=team.waitlist_full,
            ))
            view.add_item(discord.ui.Button(
                label="Leave Waitlist",
                style=discord.ButtonStyle.secondary,
                custom_id=f"{LEAVE_WAITLIST}{team.id}",
            ))
        else:
            view.add_item(discord.ui.Button(
                label="Join", style=discord.ButtonStyle.success, custom_id=f"{JOIN}{team.id}"
            ))
        view.add_item(discord.ui.Button(
            label="Leave", style=discord.ButtonStyle.secondary, custom_id=f"{LEAVE}{team.id}"
        ))
        view.add_item(discord.ui.Button(
            label="Set Name", style=discord.ButtonStyle.secondary, custom_id=f"{SET_NAME}{team.id}"
        ))
        view.add_item(discord.ui.Button(
            label="Set Timer",
            style=discord.ButtonStyle.secondary,
            custom_id=f"{SET_TIMER}{team.id}",
        ))
        view.add_item(discord.ui.Button(
            label="Close", style=discord.ButtonStyle.primary, custom_id=f"{CLOSE}{team.id}"
        ))
        view.add_item(discord.ui.Button(
            label="Disband", style=discord.ButtonStyle.danger, custom_id=f"{DISBAND}{team.id}"
        ))
        return view

    def _channel(self, team: Team) -> discord.abc.Messageable | None:
        if self.client is None:
            return None
        channel = self.client.get_channel(team.channel_id)
        if channel is None:
            logger.warning("team_channel_missing team=%s channel_id=%s", team.id, team.channel_id)
        return channel

    async def _edit_team_message(self, team: Team, **kwargs: object) -> None:
        channel = self._channel(team)
        if channel is None or team.message_id is None:
            return
        try:
            await channel.get_partial_message(team.message_id).edit(**kwargs)
        except discord.NotFound:
            logger.info("team_message_deleted team=%s", team.id)
            self.store.remove(team.id)
        except discord.HTTPException:
            logger.exception("team_message_edit_failed team=%s", team.id)

    async def _delete_team_message(self, channel_id: int, message_id: int | None) -> None:
        if self.client is None or message_id is None:
            return
        channel = self.client.get_channel(channel_id)
        if channel is None:
            return
        try:
            await channel.get_partial_message(message_id).delete()
        except discord.HTTPException as exc:
            logger.info("team_message_delete_failed message_id=%s err=%s", message_id, exc)

    async def _save_history(self, team: Team, status: str) -> None:
        try:
            async with db_session(self.engine) as repo:
                await repo.save_team_history(
                    guild_id=str(team.guild_id),
                    team_id=team.id,
                    leader_id=str(team.leader.user_id),
                    member_ids=[str(m.user_id) for m in team.roster],
                    status=status,
                    name=team.name,
                )
        except SQLAlchemyError:
            logger.exception("team_history_save_failed team=%s status=%s", team.id, status)

    # --- Lifecycle ---

    async def create_team(
        self,
        leader: discord.abc.User,
        channel: discord.abc.GuildChannel,
        timer_hours: float | None = None,
    ) -> Team:
        created = datetime.now(UTC)
        team = Team(
            id=f"{int(created.timestamp() * 1000)}_{leader.id}",
            guild_id=channel.guild.id,
            channel_id=channel.id,
            leader=as_member(leader),
            created_at=created,
        )
        if timer_hours:
            team.target_time = created + timedelta(hours=timer_hours)

        message = await channel.send(embed=build_team_embed(team), view=self.build_view(team))
        team.message_id = message.id
        self.store.add(team)
        self._schedule_lifecycle(team)
        logger.info(
            "team_created team=%s guild=%s leader=%s timer_hours=%s",
            team.id,
            team.guild_id,
            leader.id,
            timer_hours,
        )
        return team

    def _schedule_lifecycle(self, team: Team) -> None:
        team.timers.schedule(
            "refresh", REFRESH_INTERVAL_SECONDS, self._bound(team.id, self._on_refresh)
        )
        if team.target_time is not None:
            self._schedule_event(team)
        else:
            team.timers.schedule(
                "warning", DISBAND_WARNING_SECONDS, self._bound(team.id, self._on_warning)
            )
            team.timers.schedule(
                "disband", DISBAND_SECONDS, self._bound(team.id, self._on_expire)
            )

    def _schedule_event(self, team: Team) -> None:
        if team.target_time is None:
            return
        delay = (team.target_time - datetime.now(UTC)).total_seconds()
        if delay > 0:
            team.timers.schedule("event", delay, self._bound(team.id, self._on_event))

    def _bound(
        self, team_id: str, callback: Callable[[Team], Awaitable[None]]
    ) -> Callable[[], Awaitable[None]]:
        """Timer callback that looks the team up again when it fires."""

        async def fire() -> None:
            team = self.store.get(team_id)
            if team is not None:
                await callback(team)

        return fire

    async def _on_refresh(self, team: Team) -> None:
        if team.is_full:
            return
        await self._edit_team_message(
            team, embed=build_team_embed(team), view=self.build_view(team)
        )
        if team.id in self.store:
            team.timers.schedule(
                "refresh", REFRESH_INTERVAL_SECONDS, self._bound(team.id, self._on_refresh)
            )

    async def _on_warning(self, team: Team) -> None:
        if team.is_full:
            return
        channel = self._channel(team)
        if channel is None:
            return
        await channel.send(
            f"⏰ Team will auto-disband in **5 minutes** if not filled! ({team.size}/{TEAM_SIZE})"
        )

    async def _on_expire(self, team: Team) -> None:
        if team.is_full:
            return
        logger.info("team_expired team=%s size=%d", team.id, team.size)
        self.store.remove(team.id)
        await self._save_history(team, "expired")
        await self._edit_team_message(
            team,
            embed=build_team_disbanded_embed("Not enough players joined in time."),
            view=None,
        )

    async def _on_event(self, team: Team) -> None:
        channel = self._channel(team)
        if channel is not None:
            pings = " ".join(m.mention for m in team.roster)
            await channel.send(f"🚨 **EVENT STARTING NOW!** 🚨\n{pings}\n\nGood luck! 🎮")
        team.timers.cancel("refresh")
        team.timers.schedule(
            "cleanup", COMPLETED_CLEANUP_SECONDS, self._bound(team.id, self._on_cleanup)
        )

    async def _on_cleanup(self, team: Team) -> None:
        self.store.remove(team.id)
        await self._delete_team_message(team.channel_id, team.message_id)
        logger.info("team_cleaned_up team=%s", team.id)

    async def _complete(self, team: Team) -> None:
        """Celebrate a full roster and record it."""
        for name in ("refresh", "warning", "disband"):
            team.timers.cancel(name)

        ranks: dict[int, str] = {}
        tiers: list[int] = []
        for member in team.roster:
            rank = await get_member_rank(
                self.engine, self.rank_client, team.guild_id, member.user_id
            )
            if rank is not None and rank.tier > 0:
                ranks[member.user_id] = f"{rank.name} ({rank.rr} RR)"
                tiers.append(rank.tier)

        channel = self._channel(team)
        if channel is not None:
            try:
                await channel.send(
                    embed=build_team_complete_embed(team, ranks, average_rank(tiers))
                )
            except discord.HTTPException:
                logger.exception("team_celebration_failed team=%s", team.id)
        await self._save_history(team, "completed")
        logger.info("team_completed team=%s", team.id)

        if team.target_time is None or team.target_time <= datetime.now(UTC):
            team.timers.schedule(
                "cleanup", COMPLETED_CLEANUP_SECONDS, self._bound(team.id, self._on_cleanup)
            )

    # --- Text entry points ---

    async def open_team(self, message: discord.Message, args: list[str]) -> None:
        """``!valorantteam [timer:<hours>]``"""
        if message.guild is None:
            return
        timer_hours = parse_timer_hours(" ".join(args))
        if timer_hours is not None and not 0 < timer_hours <= MAX_TIMER_HOURS:
            await message.channel.send(f"❌ Timer must be between 0 and {MAX_TIMER_HOURS} hours.")
            return
        try:
            await self.create_team(message.author, message.channel, timer_hours)
        except discord.HTTPException:
            logger.exception("team_create_failed channel_id=%s", message.channel.id)
            await message.channel.send("❌ Failed to create team. Try again.")

    async def on_role_mention(self, message: discord.Message) -> None:
        """Message processor: mentioning the Valorant role opens a team."""
        if self.role_id is None or message.guild is None:
            return
        if (message.content or "").startswith(self.prefix):
            return
        if not any(role.id == self.role_id for role in message.role_mentions):
            return
        await self.open_team(message, (message.content or "").split())

    # --- Buttons ---

    async def _lookup(self, interaction: discord.Interaction, prefix: str) -> Team | None:
        custom_id = str((interaction.data or {}).get("custom_id", ""))
        team = self.store.get(custom_id[len(prefix) :])
        if team is None:
            await send_ephemeral(interaction, TEAM_GONE_MESSAGE)
        return team

    async def _rerender(self, interaction: discord.Interaction, team: Team) -> None:
        await interaction.response.edit_message(
            embed=build_team_embed(team), view=self.build_view(team)
        )

    async def on_join(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, JOIN)
        if team is None:
            return
        try:
            team.join(as_member(interaction.user))
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        await self._rerender(interaction, team)
        if team.is_full:
            await self._complete(team)

    async def on_leave(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, LEAVE)
        if team is None:
            return
        try:
            promoted = team.leave(interaction.user.id)
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        await self._rerender(interaction, team)
        if promoted is not None:
            await interaction.followup.send(
                f"🎉 {promoted.mention} has been promoted from the waitlist!"
            )
        if not team.is_full and not team.timers.is_pending("refresh"):
            team.timers.schedule(
                "refresh", REFRESH_INTERVAL_SECONDS, self._bound(team.id, self._on_refresh)
            )

    async def on_join_waitlist(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, JOIN_WAITLIST)
        if team is None:
            return
        try:
            team.join_waitlist(as_member(interaction.user))
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        await self._rerender(interaction, team)

    async def on_leave_waitlist(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, LEAVE_WAITLIST)
        if team is None:
            return
        try:
            team.leave_waitlist(interaction.user.id)
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        await self._rerender(interaction, team)

    async def on_disband(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, DISBAND)
        if team is None:
            return
        try:
            team.require_leader(interaction.user.id, "disband the team")
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        self.store.remove(team.id)
        await interaction.response.edit_message(embed=build_team_disbanded_embed(), view=None)
        await self._save_history(team, "disbanded")
        logger.info("team_disbanded team=%s", team.id)

        async def delete_message() -> None:
            await self._delete_team_message(team.channel_id, team.message_id)

        self.timers.schedule(f"delete:{team.id}", DISBAND_DELETE_SECONDS, delete_message)

    async def on_close(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, CLOSE)
        if team is None:
            return
        try:
            team.require_leader(interaction.user.id, "close the team")
            if team.size < MIN_CLOSE_TEAM_SIZE:
                raise TeamError(f"Need at least {MIN_CLOSE_TEAM_SIZE} players to close the team!")
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        for name in ("refresh", "warning", "disband", "event"):
            team.timers.cancel(name)
        await interaction.response.edit_message(embed=build_team_closed_embed(team), view=None)
        await self._save_history(team, "completed")
        team.timers.schedule(
            "cleanup", CLOSE_CLEANUP_SECONDS, self._bound(team.id, self._on_cleanup)
        )
        logger.info("team_closed team=%s size=%d", team.id, team.size)

    async def on_set_name(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, SET_NAME)
        if team is None:
            return
        try:
            team.require_leader(interaction.user.id, "name the team")
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        modal = discord.ui.Modal(title="Name Your Team", custom_id=f"{NAME_MODAL}{team.id}")
        modal.add_item(discord.ui.TextInput(
            label="Team name",
            custom_id=NAME_INPUT,
            default=team.name,
            max_length=MAX_TEAM_NAME_LENGTH,
            required=True,
        ))
        await interaction.response.send_modal(modal)

    async def on_name_submit(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, NAME_MODAL)
        if team is None:
            return
        name = modal_value(interaction, NAME_INPUT).strip()
        if not name or len(name) > MAX_TEAM_NAME_LENGTH:
            await send_ephemeral(
                interaction, f"❌ Team names must be 1-{MAX_TEAM_NAME_LENGTH} characters."
            )
            return
        team.name = name
        await self._rerender(interaction, team)

    async def on_set_timer(self, interaction: discord.Interaction) -> None:
        team = await self._lookup(interaction, SET_TIMER)
        if team is None:
            return
        try:
            team.require_leader(interaction.user.id, "set the timer")
        except TeamError as exc:
            await send_ephemeral(interaction, f"❌ {exc}")
            return
        modal = discord.ui.Modal(title="Set Event Timer", custom_id=f"{TIMER_MODAL}{team.id}")
        modal.add_item(discord.ui.TextInput(
            label="Hours until event (e.g. 0.5 or 2)",
            custom_id=TIMER_INPUT,
            placeholder="1.5",
            required=True,
        ))
        await interaction.response.send_modal(modal)

    async def on_timer_submit(self, interaction: discord.Interaction) -> None:
        """Re-arm the event timer; a team with an event time no longer auto-disbands."""
        team = await self._lookup(interaction, TIMER_MODAL)
        if team is None:
            return
        try:
            hours = float(modal_value(interaction, TIMER_INPUT).strip())
        except ValueError:
            hours = 0.0
        if not 0 < hours <= MAX_TIMER_HOURS:
            await send_ephemeral(
                interaction,
                f"❌ Invalid time. Enter a number of hours between 0 and {MAX_TIMER_HOURS}"
                " (e.g. 0.5 or 2).",
            )
            return
        team.target_time = datetime.now(UTC) + timedelta(hours=hours)
        for name in ("warning", "disband", "cleanup"):
            team.timers.cancel(name)
        self._schedule_event(team)
        await self._rerender(interaction, team)
        await interaction.followup.send(
            f"✅ Timer set for **{hours:g} hours** from now!", ephemeral=True
        )
        logger.info("team_timer_set team=%s hours=%s", team.id, hours)

    def dispose(self) -> None:
        self.store.dispose_all()
        self.timers.dispose()


def setup(context: FeatureContext) -> Feature:
    settings = context.settings
    teams = ValorantTeams(
        context.engine,
        context.client,
        rank_client=context.rank_client,
        role_id=settings.valorant_role,
        prefix=settings.command_prefix,
    )
    return Feature(
        name="valorant_team",
        commands=[
            Command(
                "valorantteam",
                teams.open_team,
                aliases=("valteam",),
                usage="valorantteam [timer:<hours>]",
                description="Start a Valorant five-stack",
            ),
        ],
        processors=[teams.on_role_mention],
        buttons={
            JOIN: teams.on_join,
            LEAVE: teams.on_leave,
            JOIN_WAITLIST: teams.on_join_waitlist,
            LEAVE_WAITLIST: teams.on_leave_waitlist,
            DISBAND: teams.on_disband,
            CLOSE: teams.on_close,
            SET_NAME: teams.on_set_name,
            SET_TIMER: teams.on_set_timer,
        },
        modals={NAME_MODAL: teams.on_name_submit, TIMER_MODAL: teams.on_timer_submit},
        dispose=teams.dispose,
    )
