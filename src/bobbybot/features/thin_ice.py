"""Thin ice: escalating timeouts for insulting Bobby."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import discord

from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.discord.helpers import db_session

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

BAD_WORDS = ("stupid", "dumb", "idiot", "trash", "sucks", "useless", "shut up", "hate you")

# Timeout per prior-warning count; the first offense only gets the role.
TIMEOUTS: dict[int, timedelta] = {
    1: timedelta(minutes=1),
    2: timedelta(minutes=5),
}
MAX_TIMEOUT = timedelta(minutes=10)


def is_offense(content: str, bad_words: tuple[str, ...] = BAD_WORDS) -> bool:
    lowered = content.lower()
    return "bobby" in lowered and any(word in lowered for word in bad_words)


def timeout_for(warnings: int) -> timedelta | None:
    """Timeout for an offense given the warnings already on record."""
    if warnings <= 0:
        return None
    return TIMEOUTS.get(warnings, MAX_TIMEOUT)


class ThinIce:
    def __init__(self, engine: AsyncEngine, role_id: int | None = None) -> None:
        self.engine = engine
        self.role_id = role_id

    async def check(self, message: discord.Message) -> None:
        """Message processor."""
        if message.guild is None or not is_offense(message.content or ""):
            return
        member = message.author
        if not isinstance(member, discord.Member):
            return

        guild_id, user_id = str(message.guild.id), str(member.id)
        async with db_session(self.engine) as repo:
            count = await repo.increment_warnings(guild_id, user_id)
        warnings = count - 1
        logger.info("thin_ice_offense guild=%s user=%s warnings=%d", guild_id, user_id, count)

        duration = timeout_for(warnings)
        try:
            if duration is None:
                if self.role_id is not None:
                    role = message.guild.get_role(self.role_id)
                    if role is not None:
                        await member.add_roles(role, reason="Thin ice")
                await message.channel.send(f"{member.mention}, you're on thin ice!")
                return
            minutes = int(duration.total_seconds() // 60)
            again = " again" if warnings > 1 else ""
            await message.channel.send(
                f"{member.mention}, you broke the already thin ice{again}. "
                f"Timeout for {minutes} minute{'s' if minutes != 1 else ''}."
            )
            await member.timeout(duration, reason="Broke thin ice")
        except (discord.Forbidden, discord.HTTPException) as exc:
            logger.warning(
                "thin_ice_action_failed guild=%s user=%s warnings=%d err=%s",
                guild_id,
                user_id,
                count,
                exc,
            )


def setup(context: FeatureContext) -> Feature:
    thin_ice = ThinIce(context.engine, context.settings.thin_ice_role)
    return Feature(name="thin_ice", processors=[thin_ice.check])
