"""Text command dispatch.

One ``on_message`` listener feeds every message through ``CommandRouter.dispatch``:

1. Bot-authored messages are dropped.
2. Messages from guilds other than the configured target guild are dropped.
3. Every message processor sees the message, in registration order.
4. If the message starts with the prefix, the first word (case-folded) is
   looked up by exact name and its handler runs once with the remaining
   whitespace-separated words as ``args``.

Lookup misses are silent. A handler exception is logged and answered with a
single generic notice in the originating channel; it is never retried.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import discord

logger = logging.getLogger(__name__)

CommandHandler = Callable[["discord.Message", list[str]], Awaitable[None]]
MessageProcessor = Callable[["discord.Message"], Awaitable[None]]

COMMAND_ERROR_NOTICE = "There was an error executing that command."


class DuplicateRegistrationError(Exception):
    """Raised when a command name, slash command, or component id is registered twice."""


@dataclass(frozen=True)
class Command:
    """A ``!command`` and the coroutine that runs it.

    ``usage`` and ``description`` feed the help listing; ``feature`` is the
    owning feature's name and is filled in by the registry.
    """

    name: str
    handler: CommandHandler
    aliases: tuple[str, ...] = ()
    usage: str = ""
    description: str = ""
    feature: str = ""

    @property
    def names(self) -> tuple[str, ...]:
        return (self.name.lower(), *(a.lower() for a in self.aliases))


def describe_message(message: discord.Message) -> str:
    """Log context for a message: user, guild and channel."""
    author = message.author
    guild = message.guild.name if message.guild else "DM"
    channel = getattr(message.channel, "name", None) or "unknown"
    return f"user={author} ({author.id}) guild={guild} channel=#{channel}"


class CommandRouter:
    """Prefix-command table plus an ordered list of message processors."""

    def __init__(self, prefix: str = "!", *, target_guild_id: int | None = None) -> None:
        self.prefix = prefix
        self.target_guild_id = target_guild_id
        self._commands: dict[str, Command] = {}
        self._processors: list[MessageProcessor] = []

    # --- Registration ---

    def register(self, command: Command) -> None:
        """Register a command under its name and every alias.

        Raises DuplicateRegistrationError (and registers nothing) if any of
        those names is already taken.
        """
        names = command.names
        taken = [n for n in names if n in self._commands]
        if taken or len(set(names)) != len(names):
            msg = f"command name(s) already registered: {', '.join(taken or names)}"
            raise DuplicateRegistrationError(msg)
        for name in names:
            self._commands[name] = command

    def register_commands(self, commands: list[Command]) -> None:
        for command in commands:
            self.register(command)

    def register_processor(self, processor: MessageProcessor) -> None:
        self._processors.append(processor)

    # --- Introspection ---

    def get(self, name: str) -> Command | None:
        return self._commands.get(name.lower())

    @property
    def commands(self) -> list[Command]:
        """Distinct commands in registration order (aliases collapsed)."""
        seen: dict[int, Command] = {}
        for command in self._commands.values():
            seen.setdefault(id(command), command)
        return list(seen.values())

    @property
    def command_names(self) -> list[str]:
        return list(self._commands)

    @property
    def command_count(self) -> int:
        return len(self._commands)

    @property
    def processor_count(self) -> int:
        return len(self._processors)

    # --- Dispatch ---

    def parse(self, content: str) -> tuple[str, list[str]] | None:
        """Split ``<prefix>name arg1 arg2`` into ``("name", ["arg1", "arg2"])``.

        Returns None when the content is not a command.
        """
        if not content.startswith(self.prefix):
            return None
        words = content[len(self.prefix) :].split()
        if not words:
            return None
        return words[0].lower(), words[1:]

    def should_ignore(self, message: discord.Message) -> bool:
        if message.author.bot:
            return True
        return (
            self.target_guild_id is not None
            and message.guild is not None
            and message.guild.id != self.target_guild_id
        )

    async def dispatch(self, message: discord.Message) -> Command | None:
        """Route one message. Returns the command that ran, if any."""
        if self.should_ignore(message):
            return None

        await self._run_processors(message)

        parsed = self.parse(message.content or "")
        if parsed is None:
            return None
        name, args = parsed

        command = self._commands.get(name)
        if command is None:
            return None

        logger.info("command_dispatch name=%s %s", name, describe_message(message))
        try:
            await command.handler(message, args)
        except Exception:  # Router boundary: feature errors must not escape the listener
            logger.exception("command_failed name=%s %s", name, describe_message(message))
            await self._send_error_notice(message, name)
        return command

    async def _run_processors(self, message: discord.Message) -> None:
        for processor in self._processors:
            try:
                await processor(message)
            except Exception:  # One processor failing must not starve the rest
                logger.exception(
                    "message_processor_failed processor=%s %s",
                    getattr(processor, "__qualname__", repr(processor)),
                    describe_message(message),
                )

    async def _send_error_notice(self, message: discord.Message, name: str) -> None:
        try:
            await message.channel.send(COMMAND_ERROR_NOTICE)
        except Exception:  # Last-resort handler: the channel may be gone or forbidden
            logger.exception("command_error_notice_failed name=%s", name)
