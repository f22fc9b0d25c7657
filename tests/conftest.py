"""Shared test fixtures.

All Discord objects are mocked, no real Discord connection required.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from bobbybot.config import Settings
from bobbybot.db.engine import create_engine, init_db

GUILD_ID = 987654321
CHANNEL_ID = 555000111


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults."""
    return Settings(
        bobby_env="development",
        database_url="sqlite+aiosqlite:///:memory:",
        discord_guild_id=str(GUILD_ID),
        _env_file=None,
    )


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """In-memory SQLite engine with all tables."""
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await init_db(eng)
    yield eng
    await eng.dispose()


def build_member(
    user_id: int = 12345,
    display_name: str = "TestUser",
    *,
    bot: bool = False,
    roles: list[int] | None = None,
    administrator: bool = False,
) -> MagicMock:
    member = MagicMock(spec=discord.Member)
    member.id = user_id
    member.name = display_name.lower()
    member.display_name = display_name
    member.mention = f"<@{user_id}>"
    member.bot = bot
    member.roles = [MagicMock(id=role_id) for role_id in roles or []]
    member.guild_permissions = MagicMock(administrator=administrator)
    member.add_roles = AsyncMock()
    member.timeout = AsyncMock()
    member.__str__ = MagicMock(return_value=display_name)
    return member


def build_guild(guild_id: int = GUILD_ID, members: list[MagicMock] | None = None) -> MagicMock:
    guild = MagicMock(spec=discord.Guild)
    guild.id = guild_id
    guild.name = "Test Guild"
    guild.members = members or []
    by_id = {m.id: m for m in guild.members}
    guild.get_member = MagicMock(side_effect=by_id.get)
    guild.get_role = MagicMock(side_effect=lambda role_id: MagicMock(id=role_id))
    return guild


def build_channel(channel_id: int = CHANNEL_ID) -> MagicMock:
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = channel_id
    channel.name = "general"
    channel.mention = f"<#{channel_id}>"
    sent = MagicMock(spec=discord.Message)
    sent.id = 424242
    channel.send = AsyncMock(return_value=sent)
    partial = MagicMock()
    partial.edit = AsyncMock()
    partial.delete = AsyncMock()
    channel.get_partial_message = MagicMock(return_value=partial)
    return channel


def make_message(
    content: str = "",
    *,
    author: MagicMock | None = None,
    guild: MagicMock | None = None,
    channel: MagicMock | None = None,
    in_dm: bool = False,
    mentions: list[MagicMock] | None = None,
    role_mentions: list[MagicMock] | None = None,
) -> MagicMock:
    """Build a Discord message mock with an async ``channel.send``."""
    message = MagicMock(spec=discord.Message)
    message.content = content
    message.author = author or build_member()
    message.guild = None if in_dm else (guild or build_guild())
    message.channel = channel or build_channel()
    if message.guild is not None:
        message.channel.guild = message.guild
    message.mentions = mentions or []
    message.role_mentions = role_mentions or []
    message.jump_url = "https://discord.com/channels/1/2/3"
    message.reply = AsyncMock()
    return message


def make_interaction(
    *,
    kind: discord.InteractionType = discord.InteractionType.component,
    custom_id: str | None = None,
    name: str | None = None,
    component_type: int = discord.ComponentType.button.value,
    user: MagicMock | None = None,
    guild: MagicMock | None = None,
    channel: MagicMock | None = None,
    response_done: bool = False,
    values: dict[str, str] | None = None,
) -> MagicMock:
    """Build a Discord interaction mock for any interaction type."""
    interaction = MagicMock(spec=discord.Interaction)
    interaction.type = kind
    data: dict[str, object] = {}
    if custom_id is not None:
        data["custom_id"] = custom_id
    if name is not None:
        data["name"] = name
    if kind == discord.InteractionType.component:
        data["component_type"] = component_type
    if values is not None:
        data["components"] = [
            {"type": 1, "components": [{"type": 4, "custom_id": key, "value": value}]}
            for key, value in values.items()
        ]
    interaction.data = data
    interaction.user = user or build_member()
    interaction.guild = guild or build_guild()
    interaction.guild_id = interaction.guild.id
    interaction.channel = channel or build_channel()
    interaction.channel_id = interaction.channel.id
    interaction.namespace = SimpleNamespace()
    interaction.message = MagicMock(id=424242)
    interaction.response = AsyncMock()
    interaction.response.is_done = MagicMock(return_value=response_done)
    interaction.followup = AsyncMock()
    return interaction

