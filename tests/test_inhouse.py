"""Tests for in-house lobbies."""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import MagicMock

import discord
import httpx
import pytest
from conftest import GUILD_ID, build_channel, build_member, make_interaction, make_message
from sqlalchemy.ext.asyncio import AsyncEngine

from bobbybot.core.cooldowns import CooldownTracker
from bobbybot.core.inhouse import INHOUSE_SIZE, Inhouse, InhouseStore
from bobbybot.core.ranks import RankClient
from bobbybot.core.teams import Member
from bobbybot.discord.helpers import db_session
from bobbybot.features.inhouse import (
    BALANCE,
    CANCEL,
    INHOUSE_CREATE_COOLDOWN_SECONDS,
    INHOUSE_GONE_MESSAGE,
    JOIN,
    LEAVE,
    Inhouses,
)

HOST_ID = 12345


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def channel() -> MagicMock:
    return build_channel()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def inhouses(
    engine: AsyncEngine, channel: MagicMock, clock: FakeClock
) -> AsyncIterator[Inhouses]:
    client = MagicMock(spec=discord.Client)
    client.get_channel = MagicMock(return_value=channel)
    feature = Inhouses(engine, client, cooldowns=CooldownTracker(60, clock=clock))
    yield feature
    feature.dispose()


async def open_lobby(inhouses: Inhouses, channel: MagicMock) -> Inhouse:
    await inhouses.open_inhouse(make_message("!inhouse", channel=channel), [])
    return inhouses.store.all()[-1]


def click(prefix: str, inhouse: Inhouse, user_id: int = HOST_ID) -> MagicMock:
    return make_interaction(
        custom_id=f"{prefix}{inhouse.id}", user=build_member(user_id, f"User{user_id}")
    )


def fill(inhouse: Inhouse, count: int) -> None:
    for n in range(count):
        inhouse.join(Member(600 + n, f"Player{n}"))


class TestOpen:
    async def test_injected_state_is_used(self, engine: AsyncEngine) -> None:
        store = InhouseStore()
        cooldowns = CooldownTracker(60)
        inhouses = Inhouses(engine, store=store, cooldowns=cooldowns)
        assert inhouses.store is store
        assert inhouses.cooldowns is cooldowns

    async def test_open(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)

        assert inhouse.host.user_id == HOST_ID
        assert inhouse.message_id == 424242
        assert inhouse.timers.pending == ["expire"]

    async def test_one_active_lobby_per_host(
        self, inhouses: Inhouses, channel: MagicMock
    ) -> None:
        await open_lobby(inhouses, channel)
        await inhouses.open_inhouse(make_message("!inhouse", channel=channel), [])

        assert len(inhouses.store) == 1
        assert "already have an active in-house" in channel.send.call_args.args[0]

    async def test_creation_cooldown(
        self, inhouses: Inhouses, channel: MagicMock, clock: FakeClock
    ) -> None:
        first = await open_lobby(inhouses, channel)
        await inhouses.on_cancel(click(CANCEL, first))
        clock.now += 30

        await inhouses.open_inhouse(make_message("!inhouse", channel=channel), [])

        assert len(inhouses.store) == 0
        assert "Please wait 31s" in channel.send.call_args.args[0]


class TestButtons:
    async def test_join_until_full(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        fill(inhouse, INHOUSE_SIZE - 2)

        interaction = click(JOIN, inhouse, user_id=2)
        await inhouses.on_join(interaction)

        assert inhouse.is_full
        assert inhouse.timers.pending == []
        interaction.followup.send.assert_awaited_once()
        view = interaction.response.edit_message.call_args.kwargs["view"]
        assert f"{BALANCE}{inhouse.id}" in {item.custom_id for item in view.children}

    async def test_leave_restarts_expiry(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        fill(inhouse, INHOUSE_SIZE - 1)
        inhouse.timers.cancel("expire")

        await inhouses.on_leave(click(LEAVE, inhouse, user_id=600))

        assert inhouse.timers.pending == ["expire"]

    async def test_host_cannot_leave(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        interaction = click(LEAVE, inhouse)
        await inhouses.on_leave(interaction)
        assert "host" in interaction.response.send_message.call_args.args[0]

    async def test_stale_lobby(self, inhouses: Inhouses) -> None:
        interaction = make_interaction(custom_id=f"{JOIN}missing")
        await inhouses.on_join(interaction)
        interaction.response.send_message.assert_awaited_once_with(
            INHOUSE_GONE_MESSAGE, ephemeral=True
        )

    async def test_only_host_cancels(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        await inhouses.on_cancel(click(CANCEL, inhouse, user_id=2))
        assert inhouse.id in inhouses.store

    async def test_cancel(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        interaction = click(CANCEL, inhouse)

        await inhouses.on_cancel(interaction)

        assert inhouse.id not in inhouses.store
        assert inhouse.timers.disposed
        assert interaction.response.edit_message.call_args.kwargs["view"] is None


class TestBalance:
    async def test_requires_full_lobby(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        interaction = click(BALANCE, inhouse)
        await inhouses.on_balance(interaction)
        assert "Need 10 players" in interaction.response.send_message.call_args.args[0]

    async def test_only_host(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        fill(inhouse, INHOUSE_SIZE - 1)
        interaction = click(BALANCE, inhouse, user_id=600)
        await inhouses.on_balance(interaction)
        assert inhouse.teams is None

    async def test_balances_with_ranks(
        self, engine: AsyncEngine, channel: MagicMock, clock: FakeClock
    ) -> None:
        # Host is Radiant, everyone else is unregistered (0 MMR).
        async with db_session(engine) as repo:
            await repo.upsert_registration(str(GUILD_ID), str(HOST_ID), "Host", "NA1")

        def handler(request: httpx.Request) -> httpx.Response:
            data = {"current_data": {"currenttier": 27, "ranking_in_tier": 500}}
            return httpx.Response(200, json={"data": data})

        rank_client = RankClient(
            "key",
            http_client=httpx.AsyncClient(
                base_url="https://api.henrikdev.xyz", transport=httpx.MockTransport(handler)
            ),
        )
        client = MagicMock(spec=discord.Client)
        client.get_channel = MagicMock(return_value=channel)
        inhouses = Inhouses(
            engine, client, rank_client=rank_client, cooldowns=CooldownTracker(60, clock=clock)
        )
        inhouse = await open_lobby(inhouses, channel)
        fill(inhouse, INHOUSE_SIZE - 1)
        interaction = click(BALANCE, inhouse)

        await inhouses.on_balance(interaction)

        interaction.response.defer.assert_awaited_once()
        teams = inhouse.teams
        assert teams is not None
        assert len(teams.team1) == len(teams.team2) == 5
        assert teams.team1[0].user_id == HOST_ID
        assert teams.team1[0].rank_name == "Radiant"
        assert teams.mmr_difference == 3200
        interaction.followup.send.assert_awaited_once()
        inhouses.dispose()


class TestAfterBalance:
    async def balanced(self, inhouses: Inhouses, channel: MagicMock) -> Inhouse:
        inhouse = await open_lobby(inhouses, channel)
        fill(inhouse, INHOUSE_SIZE - 1)
        inhouse.timers.cancel("expire")
        await inhouses.on_balance(click(BALANCE, inhouse))
        return inhouse

    async def test_cleanup_scheduled(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await self.balanced(inhouses, channel)
        assert inhouse.teams is not None
        assert inhouse.timers.pending == ["cleanup"]

    async def test_host_can_open_another(
        self, inhouses: Inhouses, channel: MagicMock, clock: FakeClock
    ) -> None:
        first = await self.balanced(inhouses, channel)
        assert inhouses.store.hosted_by(HOST_ID) == []
        clock.now += INHOUSE_CREATE_COOLDOWN_SECONDS

        await inhouses.open_inhouse(make_message("!inhouse", channel=channel), [])

        assert "embed" in channel.send.call_args.kwargs
        assert inhouses.store.hosted_by(HOST_ID)[0] is not first

    async def test_cleanup_removes_lobby(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await self.balanced(inhouses, channel)

        await inhouses._cleanup(inhouse.id)()

        assert inhouse.id not in inhouses.store
        channel.get_partial_message.return_value.delete.assert_awaited_once()

    async def test_leave_cancels_cleanup(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await self.balanced(inhouses, channel)

        await inhouses.on_leave(click(LEAVE, inhouse, user_id=600))

        assert inhouse.teams is None
        assert inhouse.timers.pending == ["expire"]


class TestExpiry:
    async def test_expiry_removes_unfilled_lobby(
        self, inhouses: Inhouses, channel: MagicMock
    ) -> None:
        inhouse = await open_lobby(inhouses, channel)

        await inhouses._expiry(inhouse.id)()

        assert inhouse.id not in inhouses.store
        channel.get_partial_message.return_value.delete.assert_awaited_once()

    async def test_expiry_spares_full_lobby(self, inhouses: Inhouses, channel: MagicMock) -> None:
        inhouse = await open_lobby(inhouses, channel)
        fill(inhouse, INHOUSE_SIZE - 1)

        await inhouses._expiry(inhouse.id)()

        assert inhouse.id in inhouses.store
