"""Discord helpers: DB session context, argument parsing, permission checks."""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import discord
from sqlalchemy.exc import SQLAlchemyError

from bobbybot.core.balancing import RatedPlayer
from bobbybot.core.teams import Member
from bobbybot.db.engine import get_session
from bobbybot.db.repository import Repository
from bobbybot.models.valorant import RiotAccount

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bobbybot.core.ranks import RankClient
    from bobbybot.models.valorant import RankInfo

logger = logging.getLogger(__name__)

_MENTION_RE = re.compile(r"^<@!?(\d+)>$")


@asynccontextmanager
async def db_session(
    engine: AsyncEngine,
) -> AsyncGenerator[Repository, None]:
    """Yield a Repository bound to a fresh async session."""
    async with get_session(engine) as session:
        yield Repository(session)


def parse_amount(value: str) -> int | None:
    """Parse a positive whole amount like ``500`` or ``1,000``. None if invalid."""
    cleaned = value.replace(",", "").strip()
    if not cleaned.isdigit():
        return None
    amount = int(cleaned)
    return amount if amount > 0 else None


def parse_user_id(value: str) -> int | None:
    """Accept ``<@123>``, ``<@!123>`` or a bare snowflake."""
    match = _MENTION_RE.match(value.strip())
    if match:
        return int(match.group(1))
    return int(value) if value.isdigit() else None


def target_user(message: discord.Message) -> discord.abc.User:
    """The first mentioned user, falling back to the author."""
    return message.mentions[0] if message.mentions else message.author


def as_member(user: discord.abc.User) -> Member:
    return Member(user_id=user.id, display_name=getattr(user, "display_name", None) or user.name)


def has_admin_access(user: discord.abc.User, admin_role_id: int | None) -> bool:
    """True for members holding *admin_role_id*, or Administrator when no role is set."""
    if not isinstance(user, discord.Member):
        return False
    if admin_role_id is not None:
        return any(role.id == admin_role_id for role in user.roles)
    return user.guild_permissions.administrator


async def send_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """Reply privately through whichever response channel is still open."""
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


async def get_registered_account(
    engine: AsyncEngine, guild_id: int, user_id: int
) -> RiotAccount | None:
    async with db_session(engine) as repo:
        row = await repo.get_registration(str(guild_id), str(user_id))
        if row is None:
            return None
        return RiotAccount(name=row.riot_name, tag=row.riot_tag, region=row.region)


async def get_member_rank(
    engine: AsyncEngine,
    rank_client: RankClient | None,
    guild_id: int,
    user_id: int,
) -> RankInfo | None:
    """Current rank of a registered member. None when unregistered or unavailable."""
    if rank_client is None or not rank_client.enabled:
        return None
    try:
        account = await get_registered_account(engine, guild_id, user_id)
    except SQLAlchemyError:
        logger.exception("registration_lookup_failed guild=%s user=%s", guild_id, user_id)
        return None
    if account is None:
        return None
    return await rank_client.get_rank(account)


async def rate_member(
    engine: AsyncEngine,
    rank_client: RankClient | None,
    guild_id: int,
    member: Member,
) -> RatedPlayer:
    rank = await get_member_rank(engine, rank_client, guild_id, member.user_id)
    if rank is None:
        return RatedPlayer(user_id=member.user_id, display_name=member.display_name)
    return RatedPlayer(
        user_id=member.user_id,
        display_name=member.display_name,
        mmr=rank.mmr,
        rank_name=rank.name,
    )
