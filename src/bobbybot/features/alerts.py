"""Keyword alerts: copy messages that mention watched words to a moderator channel."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable

import discord

from bobbybot.core.cooldowns import CooldownTracker, PeriodicPrune
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.discord.embeds import build_alert_embed

logger = logging.getLogger(__name__)

ALERT_COOLDOWN_SECONDS = 60


def compile_keywords(keywords: list[str]) -> dict[str, re.Pattern[str]]:
    """Whole-word, case-insensitive pattern per keyword."""
    return {kw: re.compile(rf"\b{re.escape(kw)}\b", re.IGNORECASE) for kw in keywords if kw}


class KeywordAlerts:
    def __init__(
        self,
        client: discord.Client,
        channel_id: int,
        keywords: list[str],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.channel_id = channel_id
        self.patterns = compile_keywords(keywords)
        self.cooldowns = CooldownTracker(ALERT_COOLDOWN_SECONDS, clock=clock)
        self._prune = PeriodicPrune(self.cooldowns.prune, clock=clock)

    def matches(self, content: str) -> list[str]:
        return [kw for kw, pattern in self.patterns.items() if pattern.search(content)]

    def _maybe_prune(self) -> None:
        dropped = self._prune()
        if dropped:
            logger.debug("alert_cooldowns_pruned count=%d", dropped)

    async def scan(self, message: discord.Message) -> None:
        """Message processor: alert once per user and keyword per cooldown window."""
        if message.guild is None or not (message.content or "").strip():
            return
        self._maybe_prune()

        found = self.matches(message.content)
        if not found:
            return

        channel = self.client.get_channel(self.channel_id)
        if channel is None:
            logger.error("alert_channel_missing channel_id=%s", self.channel_id)
            return

        for keyword in found:
            if not self.cooldowns.try_acquire((message.author.id, keyword.lower())):
                continue
            embed = build_alert_embed(
                keyword=keyword,
                author=str(message.author),
                author_id=message.author.id,
                channel=getattr(message.channel, "name", None) or "unknown",
                content=message.content,
                jump_url=message.jump_url,
            )
            try:
                await channel.send(content=f"🚨 **Keyword Alert:** `{keyword}`", embed=embed)
            except discord.HTTPException:
                logger.exception("alert_send_failed keyword=%s user=%s", keyword, message.author.id)
                continue
            logger.info(
                "alert_sent keyword=%s user=%s channel_id=%s",
                keyword,
                message.author.id,
                message.channel.id,
            )


def setup(context: FeatureContext) -> Feature | None:
    settings = context.settings
    if not settings.alert_keywords or settings.alert_channel is None or context.client is None:
        return None
    alerts = KeywordAlerts(context.client, settings.alert_channel, settings.alert_keywords)
    return Feature(name="alerts", processors=[alerts.scan])
