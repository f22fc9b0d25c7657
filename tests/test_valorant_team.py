"""Tests for the Valorant team builder: commands, buttons, modal and timers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import discord
import pytest
from conftest import build_channel, build_member, make_interaction, make_message
from sqlalchemy.ext.asyncio import AsyncEngine

from bobbybot.core.teams import TEAM_SIZE, Member, Team, TeamStore
from bobbybot.discord.helpers import db_session
from bobbybot.features.valorant_team import (
    CLOSE,
    DISBAND,
    JOIN,
    JOIN_WAITLIST,
    LEAVE,
    NAME_INPUT,
    NAME_MODAL,
    SET_NAME,
    SET_TIMER,
    TEAM_GONE_MESSAGE,
    TIMER_INPUT,
    TIMER_MODAL,
    ValorantTeams,
    average_rank,
    modal_value,
    parse_timer_hours,
)

LEADER_ID = 12345


@pytest.fixture
def channel() -> MagicMock:
    return build_channel()


@pytest.fixture
async def teams(engine: AsyncEngine, channel: MagicMock) -> AsyncIterator[ValorantTeams]:
    client = MagicMock(spec=discord.Client)
    client.get_channel = MagicMock(return_value=channel)
    feature = ValorantTeams(engine, client, role_id=999)
    yield feature
    feature.dispose()


async def open_team(teams: ValorantTeams, channel: MagicMock, content: str = "") -> Team:
    args = content.split()
    await teams.open_team(make_message("!valorantteam " + content, channel=channel), args)
    return teams.store.all()[-1]


def click(prefix: str, team: Team, user_id: int = LEADER_ID, **kwargs) -> MagicMock:
    return make_interaction(
        custom_id=f"{prefix}{team.id}", user=build_member(user_id, f"User{user_id}"), **kwargs
    )


def fill(team: Team, count: int) -> None:
    for n in range(count):
        team.join(Member(500 + n, f"Filler{n}"))


async def history_statuses(engine: AsyncEngine, team: Team) -> list[str]:
    async with db_session(engine) as repo:
        rows = await repo.get_team_history(str(team.guild_id), str(team.leader.user_id))
    return [row.status for row in rows if row.team_id == team.id]


class TestHelpers:
    def test_parse_timer(self) -> None:
        assert parse_timer_hours("timer:2") == 2.0
        assert parse_timer_hours("lets go TIMER:1.5 tonight") == 1.5
        assert parse_timer_hours("no timer") is None

    def test_average_rank(self) -> None:
        assert average_rank([]) == "N/A"
        assert average_rank([12, 14]) == "Gold 2"

    def test_modal_value(self) -> None:
        interaction = make_interaction(
            kind=discord.InteractionType.modal_submit,
            custom_id="m",
            values={NAME_INPUT: "Night Owls"},
        )
        assert modal_value(interaction, NAME_INPUT) == "Night Owls"
        assert modal_value(interaction, "missing") == ""


class TestOpenTeam:
    async def test_injected_store_is_used(self, engine: AsyncEngine) -> None:
        store = TeamStore()
        assert ValorantTeams(engine, store=store).store is store

    async def test_creates_team_with_buttons(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel)

        assert team.leader.user_id == LEADER_ID
        assert team.message_id == 424242
        assert team.timers.pending == ["refresh", "warning", "disband"]
        view = channel.send.call_args.kwargs["view"]
        custom_ids = {item.custom_id for item in view.children}
        assert f"{JOIN}{team.id}" in custom_ids
        assert f"{DISBAND}{team.id}" in custom_ids

    async def test_timer_schedules_event_instead_of_disband(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel, "timer:2")

        assert team.target_time is not None
        assert sorted(team.timers.pending) == ["event", "refresh"]

    @pytest.mark.parametrize("content", ["timer:0", "timer:25"])
    async def test_timer_bounds(
        self, teams: ValorantTeams, channel: MagicMock, content: str
    ) -> None:
        await teams.open_team(make_message(channel=channel), content.split())
        assert len(teams.store) == 0
        assert "Timer must be" in channel.send.call_args.args[0]

    async def test_role_mention_opens_team(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        message = make_message(
            "<@&999> anyone?", channel=channel, role_mentions=[MagicMock(id=999)]
        )
        await teams.on_role_mention(message)
        assert len(teams.store) == 1

    async def test_other_role_ignored(self, teams: ValorantTeams, channel: MagicMock) -> None:
        message = make_message("<@&1>", channel=channel, role_mentions=[MagicMock(id=1)])
        await teams.on_role_mention(message)
        assert len(teams.store) == 0


class TestButtons:
    async def test_join_and_leave(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)

        join = click(JOIN, team, user_id=2)
        await teams.on_join(join)
        assert team.has_member(2)
        join.response.edit_message.assert_awaited_once()

        leave = click(LEAVE, team, user_id=2)
        await teams.on_leave(leave)
        assert not team.has_member(2)

    async def test_double_join_is_ephemeral_error(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel)
        interaction = click(JOIN, team)

        await teams.on_join(interaction)

        interaction.response.send_message.assert_awaited_once_with(
            "❌ You're already in this team!", ephemeral=True
        )

    async def test_stale_team(self, teams: ValorantTeams) -> None:
        interaction = make_interaction(custom_id=f"{JOIN}gone_1")
        await teams.on_join(interaction)
        interaction.response.send_message.assert_awaited_once_with(
            TEAM_GONE_MESSAGE, ephemeral=True
        )

    async def test_filling_team_completes_it(
        self, teams: ValorantTeams, channel: MagicMock, engine: AsyncEngine
    ) -> None:
        team = await open_team(teams, channel)
        fill(team, TEAM_SIZE - 2)

        await teams.on_join(click(JOIN, team, user_id=2))

        assert team.is_full
        celebration = channel.send.call_args.kwargs["embed"]
        assert celebration.footer.text == "GLHF!"
        assert team.timers.pending == ["cleanup"]
        assert await history_statuses(engine, team) == ["completed"]

    async def test_leave_promotes_waitlist(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel)
        fill(team, TEAM_SIZE - 1)
        await teams.on_join_waitlist(click(JOIN_WAITLIST, team, user_id=2))
        assert team.on_waitlist(2)

        leave = click(LEAVE, team, user_id=500)
        await teams.on_leave(leave)

        assert team.has_member(2)
        leave.followup.send.assert_awaited_once()
        assert "<@2>" in leave.followup.send.call_args.args[0]

    async def test_only_leader_disbands(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)
        interaction = click(DISBAND, team, user_id=2)

        await teams.on_disband(interaction)

        assert team.id in teams.store
        assert "Only the team leader" in interaction.response.send_message.call_args.args[0]

    async def test_disband(
        self, teams: ValorantTeams, channel: MagicMock, engine: AsyncEngine
    ) -> None:
        team = await open_team(teams, channel)

        await teams.on_disband(click(DISBAND, team))

        assert team.id not in teams.store
        assert team.timers.disposed
        assert teams.timers.is_pending(f"delete:{team.id}")
        assert await history_statuses(engine, team) == ["disbanded"]

    async def test_close_needs_two_players(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel)
        interaction = click(CLOSE, team)

        await teams.on_close(interaction)

        assert "at least 2" in interaction.response.send_message.call_args.args[0]

    async def test_close(
        self, teams: ValorantTeams, channel: MagicMock, engine: AsyncEngine
    ) -> None:
        team = await open_team(teams, channel)
        fill(team, 2)
        interaction = click(CLOSE, team)

        await teams.on_close(interaction)

        assert interaction.response.edit_message.call_args.kwargs["view"] is None
        assert team.timers.pending == ["cleanup"]
        assert await history_statuses(engine, team) == ["completed"]


class TestNaming:
    async def test_set_name_opens_modal(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)
        interaction = click(SET_NAME, team)

        await teams.on_set_name(interaction)

        modal = interaction.response.send_modal.call_args.args[0]
        assert modal.custom_id == f"{NAME_MODAL}{team.id}"

    async def test_name_submit(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)
        interaction = click(
            NAME_MODAL,
            team,
            kind=discord.InteractionType.modal_submit,
            values={NAME_INPUT: "  Night Owls "},
        )

        await teams.on_name_submit(interaction)

        assert team.name == "Night Owls"
        interaction.response.edit_message.assert_awaited_once()

    async def test_blank_name_rejected(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)
        interaction = click(
            NAME_MODAL, team, kind=discord.InteractionType.modal_submit, values={NAME_INPUT: " "}
        )
        await teams.on_name_submit(interaction)
        assert team.name is None

    async def test_set_timer_opens_modal(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)
        interaction = click(SET_TIMER, team)

        await teams.on_set_timer(interaction)

        modal = interaction.response.send_modal.call_args.args[0]
        assert modal.custom_id == f"{TIMER_MODAL}{team.id}"

    async def test_only_leader_sets_timer(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)
        interaction = click(SET_TIMER, team, user_id=2)

        await teams.on_set_timer(interaction)

        interaction.response.send_modal.assert_not_called()
        assert "leader" in interaction.response.send_message.call_args.args[0]

    async def test_timer_submit_rearms_event(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel)
        assert sorted(team.timers.pending) == ["disband", "refresh", "warning"]
        interaction = click(
            TIMER_MODAL,
            team,
            kind=discord.InteractionType.modal_submit,
            values={TIMER_INPUT: "1.5"},
        )

        await teams.on_timer_submit(interaction)

        assert sorted(team.timers.pending) == ["event", "refresh"]
        assert team.target_time is not None
        remaining = team.target_time - datetime.now(UTC)
        assert timedelta(hours=1.4) < remaining <= timedelta(hours=1.5)
        interaction.response.edit_message.assert_awaited_once()
        assert "1.5 hours" in interaction.followup.send.call_args.args[0]

    @pytest.mark.parametrize("value", ["soon", "0", "-1", "25"])
    async def test_invalid_timer_rejected(
        self, teams: ValorantTeams, channel: MagicMock, value: str
    ) -> None:
        team = await open_team(teams, channel)
        interaction = click(
            TIMER_MODAL,
            team,
            kind=discord.InteractionType.modal_submit,
            values={TIMER_INPUT: value},
        )

        await teams.on_timer_submit(interaction)

        assert team.target_time is None
        assert "Invalid time" in interaction.response.send_message.call_args.args[0]
        assert "disband" in team.timers.pending


class TestTimers:
    async def test_expire_disbands_unfilled_team(
        self, teams: ValorantTeams, channel: MagicMock, engine: AsyncEngine
    ) -> None:
        team = await open_team(teams, channel)

        await teams._on_expire(team)

        assert team.id not in teams.store
        edit = channel.get_partial_message.return_value.edit
        assert edit.call_args.kwargs["view"] is None
        assert await history_statuses(engine, team) == ["expired"]

    async def test_warning(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel)
        await teams._on_warning(team)
        assert "auto-disband" in channel.send.call_args.args[0]

    async def test_event_pings_roster(self, teams: ValorantTeams, channel: MagicMock) -> None:
        team = await open_team(teams, channel, "timer:1")
        fill(team, 1)

        await teams._on_event(team)

        assert "<@500>" in channel.send.call_args.args[0]
        assert "cleanup" in team.timers.pending
        assert "refresh" not in team.timers.pending

    async def test_deleted_message_drops_team(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel)
        channel.get_partial_message.return_value.edit.side_effect = discord.NotFound(
            MagicMock(status=404, reason="Not Found"), "Unknown Message"
        )

        await teams._on_refresh(team)

        assert team.id not in teams.store

    async def test_future_target_keeps_team_after_completion(
        self, teams: ValorantTeams, channel: MagicMock
    ) -> None:
        team = await open_team(teams, channel, "timer:3")
        assert team.target_time is not None
        assert team.target_time > datetime.now(UTC) + timedelta(hours=2)
        fill(team, TEAM_SIZE - 1)

        await teams._complete(team)

        assert "cleanup" not in team.timers.pending
        assert "event" in team.timers.pending
