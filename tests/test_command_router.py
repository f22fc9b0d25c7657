"""Tests for text command dispatch."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from conftest import GUILD_ID, build_guild, build_member, make_message

from bobbybot.core.command_router import (
    COMMAND_ERROR_NOTICE,
    Command,
    CommandRouter,
    DuplicateRegistrationError,
)


@pytest.fixture
def router() -> CommandRouter:
    return CommandRouter("!", target_guild_id=GUILD_ID)


class TestParse:
    def test_splits_name_and_args(self, router: CommandRouter) -> None:
        assert router.parse("!award <@1> 500") == ("award", ["<@1>", "500"])

    def test_lowercases_name_only(self, router: CommandRouter) -> None:
        assert router.parse("!BALANCE Alice") == ("balance", ["Alice"])

    def test_collapses_whitespace(self, router: CommandRouter) -> None:
        assert router.parse("!spend    50   ") == ("spend", ["50"])

    def test_not_a_command(self, router: CommandRouter) -> None:
        assert router.parse("hello !balance") is None

    def test_bare_prefix(self, router: CommandRouter) -> None:
        assert router.parse("!") is None
        assert router.parse("!   ") is None


class TestRegistration:
    def test_aliases_resolve_to_same_command(self, router: CommandRouter) -> None:
        command = Command("balance", AsyncMock(), aliases=("bal",))
        router.register(command)
        assert router.get("bal") is command
        assert router.get("BALANCE") is command
        assert router.commands == [command]
        assert router.command_count == 2

    def test_duplicate_name_rejected(self, router: CommandRouter) -> None:
        router.register(Command("balance", AsyncMock()))
        with pytest.raises(DuplicateRegistrationError):
            router.register(Command("balance", AsyncMock()))

    def test_alias_collision_registers_nothing(self, router: CommandRouter) -> None:
        router.register(Command("bal", AsyncMock()))
        with pytest.raises(DuplicateRegistrationError):
            router.register(Command("balance", AsyncMock(), aliases=("bal",)))
        assert router.get("balance") is None

    def test_self_duplicate_alias_rejected(self, router: CommandRouter) -> None:
        with pytest.raises(DuplicateRegistrationError):
            router.register(Command("help", AsyncMock(), aliases=("HELP",)))


class TestDispatch:
    async def test_runs_handler_once_with_args(self, router: CommandRouter) -> None:
        handler = AsyncMock()
        router.register(Command("award", handler))
        message = make_message("!award <@1> 500")

        ran = await router.dispatch(message)

        assert ran is not None and ran.name == "award"
        handler.assert_awaited_once_with(message, ["<@1>", "500"])

    async def test_name_matches_exactly(self, router: CommandRouter) -> None:
        balance = AsyncMock()
        balancetop = AsyncMock()
        router.register(Command("balance", balance))
        router.register(Command("balancetop", balancetop))

        ran = await router.dispatch(make_message("!balance"))

        assert ran is not None and ran.name == "balance"
        balance.assert_awaited_once()
        balancetop.assert_not_called()

        await router.dispatch(make_message("!balancetop"))

        balance.assert_awaited_once()
        balancetop.assert_awaited_once()

    async def test_unknown_command_is_silent(self, router: CommandRouter) -> None:
        message = make_message("!nope")
        assert await router.dispatch(message) is None
        message.channel.send.assert_not_called()

    async def test_bot_author_ignored(self, router: CommandRouter) -> None:
        handler = AsyncMock()
        processor = AsyncMock()
        router.register(Command("balance", handler))
        router.register_processor(processor)

        await router.dispatch(make_message("!balance", author=build_member(bot=True)))

        handler.assert_not_called()
        processor.assert_not_called()

    async def test_other_guild_ignored(self, router: CommandRouter) -> None:
        handler = AsyncMock()
        processor = AsyncMock()
        router.register(Command("balance", handler))
        router.register_processor(processor)

        await router.dispatch(make_message("!balance", guild=build_guild(guild_id=1)))

        handler.assert_not_called()
        processor.assert_not_called()

    async def test_dm_passes_guild_filter(self, router: CommandRouter) -> None:
        handler = AsyncMock()
        router.register(Command("help", handler))
        await router.dispatch(make_message("!help", in_dm=True))
        handler.assert_awaited_once()

    async def test_no_guild_filter_accepts_any_guild(self) -> None:
        router = CommandRouter("!")
        handler = AsyncMock()
        router.register(Command("balance", handler))
        await router.dispatch(make_message("!balance", guild=build_guild(guild_id=1)))
        handler.assert_awaited_once()

    async def test_processors_run_in_order_before_command(self, router: CommandRouter) -> None:
        calls: list[str] = []

        async def first(message: object) -> None:
            calls.append("first")

        async def second(message: object) -> None:
            calls.append("second")

        async def command(message: object, args: list[str]) -> None:
            calls.append("command")

        router.register_processor(first)
        router.register_processor(second)
        router.register(Command("balance", command))

        await router.dispatch(make_message("!balance"))

        assert calls == ["first", "second", "command"]

    async def test_processors_see_plain_messages(self, router: CommandRouter) -> None:
        processor = AsyncMock()
        router.register_processor(processor)
        message = make_message("just chatting")
        await router.dispatch(message)
        processor.assert_awaited_once_with(message)

    async def test_failing_processor_does_not_stop_others(self, router: CommandRouter) -> None:
        later = AsyncMock()
        handler = AsyncMock()
        router.register_processor(AsyncMock(side_effect=RuntimeError("boom")))
        router.register_processor(later)
        router.register(Command("balance", handler))

        await router.dispatch(make_message("!balance"))

        later.assert_awaited_once()
        handler.assert_awaited_once()

    async def test_handler_error_sends_one_notice(self, router: CommandRouter) -> None:
        handler = AsyncMock(side_effect=RuntimeError("boom"))
        router.register(Command("balance", handler))
        message = make_message("!balance")

        ran = await router.dispatch(message)

        assert ran is not None
        handler.assert_awaited_once()
        message.channel.send.assert_awaited_once_with(COMMAND_ERROR_NOTICE)

    async def test_notice_failure_is_contained(self, router: CommandRouter) -> None:
        router.register(Command("balance", AsyncMock(side_effect=RuntimeError("boom"))))
        message = make_message("!balance")
        message.channel.send.side_effect = RuntimeError("channel gone")

        await router.dispatch(message)

        message.channel.send.assert_awaited_once()

    async def test_other_prefix(self) -> None:
        router = CommandRouter("?")
        handler = AsyncMock()
        router.register(Command("help", handler))
        await router.dispatch(make_message("!help"))
        handler.assert_not_called()
        await router.dispatch(make_message("?help"))
        handler.assert_awaited_once()
