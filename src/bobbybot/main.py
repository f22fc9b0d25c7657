"""BobbyBot entry point: configure logging, prepare the database, run the bot."""

from __future__ import annotations

import asyncio
import logging
import sys

from bobbybot.config import Settings
from bobbybot.db.engine import create_engine, init_db
from bobbybot.discord.bot import BobbyBot

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.bobby_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # discord.py's gateway chatter at DEBUG drowns out the bot's own lines.
    logging.getLogger("discord").setLevel(max(logging.INFO, logging.getLogger().level))


async def run_bot(settings: Settings) -> None:
    """Create tables, then run the bot until it disconnects or is cancelled."""
    engine = create_engine(settings.database_url)
    await init_db(engine)
    bot = BobbyBot(settings=settings, engine=engine)
    logger.info("bobbybot_starting env=%s prefix=%s", settings.bobby_env, settings.command_prefix)
    async with bot:
        await bot.start(settings.discord_bot_token)


def run() -> None:
    settings = Settings()
    configure_logging(settings)
    if not settings.discord_bot_token:
        logger.error("bobbybot_not_started reason=DISCORD_BOT_TOKEN is not set")
        sys.exit(1)
    try:
        asyncio.run(run_bot(settings))
    except KeyboardInterrupt:
        logger.info("bobbybot_stopped reason=keyboard_interrupt")
