"""Structured interaction dispatch.

One ``on_interaction`` listener feeds every interaction through
``InteractionRouter.dispatch``. Interactions are classified as button,
select menu, modal submit, slash command, or autocomplete:

- Buttons, select menus and modals resolve by custom id: an exact match
  first, otherwise the first registered key (insertion order) that the id
  starts with. So with ``"team_"`` registered before ``"team_join_"``, the id
  ``"team_join_42"`` goes to the ``"team_"`` handler.
- Slash commands resolve by exact name.
- Autocomplete goes to the matched slash command's ``autocomplete`` callable.

Component misses are silent (they are usually buttons on a message whose game
has already ended). Slash misses get an ephemeral "not available" reply.
Handler exceptions stop at this boundary and become an ephemeral error
message sent through whichever response channel is still open.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

import discord

from bobbybot.core.command_router import DuplicateRegistrationError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

InteractionHandler = Callable[[discord.Interaction], Awaitable[None]]

INTERACTION_ERROR_MESSAGE = "An error occurred while processing your interaction."
COMMAND_UNAVAILABLE_MESSAGE = "This command is not currently available."

_SELECT_COMPONENT_TYPES = frozenset(
    {
        discord.ComponentType.string_select.value,
        discord.ComponentType.user_select.value,
        discord.ComponentType.role_select.value,
        discord.ComponentType.mentionable_select.value,
        discord.ComponentType.channel_select.value,
    }
)


class InteractionKind(enum.StrEnum):
    BUTTON = "button"
    SELECT_MENU = "select_menu"
    MODAL = "modal"
    SLASH_COMMAND = "slash_command"
    AUTOCOMPLETE = "autocomplete"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SlashCommand:
    """A slash command routed by exact name.

    ``user_option`` is the description of an optional ``user`` member option;
    None publishes the command without options.
    """

    name: str
    handler: InteractionHandler
    description: str = ""
    autocomplete: InteractionHandler | None = None
    user_option: str | None = None


class PrefixTable:
    """Ordered custom-id table: exact match, then first-registered prefix."""

    def __init__(self, kind: InteractionKind) -> None:
        self.kind = kind
        self._handlers: dict[str, InteractionHandler] = {}

    def add(self, key: str, handler: InteractionHandler) -> None:
        if not key:
            msg = f"{self.kind} key must be non-empty"
            raise ValueError(msg)
        if key in self._handlers:
            msg = f"{self.kind} id already registered: {key!r}"
            raise DuplicateRegistrationError(msg)
        for existing in self._handlers:
            if key.startswith(existing) or existing.startswith(key):
                # Ids matching both keys keep going to the earlier one.
                logger.warning(
                    "interaction_prefix_overlap kind=%s new=%r shadowed_by=%r",
                    self.kind,
                    key,
                    existing,
                )
        self._handlers[key] = handler

    def resolve(self, custom_id: str) -> tuple[str, InteractionHandler] | None:
        handler = self._handlers.get(custom_id)
        if handler is not None:
            return custom_id, handler
        for key, candidate in self._handlers.items():
            if custom_id.startswith(key):
                return key, candidate
        return None

    def __contains__(self, key: object) -> bool:
        return key in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


def classify(interaction: discord.Interaction) -> InteractionKind:
    """Map a raw interaction to the kind of handler table that serves it."""
    itype = interaction.type
    if itype == discord.InteractionType.component:
        component_type = (interaction.data or {}).get("component_type")
        if component_type == discord.ComponentType.button.value:
            return InteractionKind.BUTTON
        if component_type in _SELECT_COMPONENT_TYPES:
            return InteractionKind.SELECT_MENU
        return InteractionKind.UNKNOWN
    if itype == discord.InteractionType.application_command:
        return InteractionKind.SLASH_COMMAND
    if itype == discord.InteractionType.modal_submit:
        return InteractionKind.MODAL
    if itype == discord.InteractionType.autocomplete:
        return InteractionKind.AUTOCOMPLETE
    return InteractionKind.UNKNOWN


def interaction_key(interaction: discord.Interaction) -> str:
    """Custom id for components and modals, command name for commands."""
    data = interaction.data or {}
    return str(data.get("custom_id") or data.get("name") or "")


def describe_interaction(interaction: discord.Interaction) -> str:
    user = interaction.user
    guild = interaction.guild.name if interaction.guild else "DM"
    channel = getattr(interaction.channel, "name", None) or "unknown"
    user_desc = f"{user} ({user.id})" if user else "unknown"
    return f"user={user_desc} guild={guild} channel=#{channel}"


class InteractionRouter:
    """Handler tables for every interaction kind."""

    def __init__(self) -> None:
        self.buttons = PrefixTable(InteractionKind.BUTTON)
        self.select_menus = PrefixTable(InteractionKind.SELECT_MENU)
        self.modals = PrefixTable(InteractionKind.MODAL)
        self._slash_commands: dict[str, SlashCommand] = {}

    # --- Registration ---

    def register_button(self, custom_id: str, handler: InteractionHandler) -> None:
        self.buttons.add(custom_id, handler)

    def register_select_menu(self, custom_id: str, handler: InteractionHandler) -> None:
        self.select_menus.add(custom_id, handler)

    def register_modal(self, custom_id: str, handler: InteractionHandler) -> None:
        self.modals.add(custom_id, handler)

    def register_slash_command(self, command: SlashCommand) -> None:
        if command.name in self._slash_commands:
            msg = f"slash command already registered: /{command.name}"
            raise DuplicateRegistrationError(msg)
        self._slash_commands[command.name] = command

    def register_buttons(self, handlers: Mapping[str, InteractionHandler]) -> None:
        for custom_id, handler in handlers.items():
            self.register_button(custom_id, handler)

    def register_select_menus(self, handlers: Mapping[str, InteractionHandler]) -> None:
        for custom_id, handler in handlers.items():
            self.register_select_menu(custom_id, handler)

    def register_modals(self, handlers: Mapping[str, InteractionHandler]) -> None:
        for custom_id, handler in handlers.items():
            self.register_modal(custom_id, handler)

    def register_slash_commands(self, commands: list[SlashCommand]) -> None:
        for command in commands:
            self.register_slash_command(command)

    @property
    def slash_commands(self) -> list[SlashCommand]:
        return list(self._slash_commands.values())

    def get_slash_command(self, name: str) -> SlashCommand | None:
        return self._slash_commands.get(name)

    # --- Dispatch ---

    def _table_for(self, kind: InteractionKind) -> PrefixTable | None:
        return {
            InteractionKind.BUTTON: self.buttons,
            InteractionKind.SELECT_MENU: self.select_menus,
            InteractionKind.MODAL: self.modals,
        }.get(kind)

    async def dispatch(self, interaction: discord.Interaction) -> bool:
        """Route one interaction. Returns True if a handler ran (even if it failed)."""
        kind = classify(interaction)
        key = interaction_key(interaction)
        try:
            if kind == InteractionKind.SLASH_COMMAND:
                return await self._dispatch_slash(interaction, key)
            if kind == InteractionKind.AUTOCOMPLETE:
                return await self._dispatch_autocomplete(interaction, key)
            table = self._table_for(kind)
            if table is None:
                logger.debug("interaction_unhandled_kind type=%s key=%s", interaction.type, key)
                return False
            return await self._dispatch_component(table, interaction, key)
        except Exception:  # Router boundary: feature errors must not escape the listener
            logger.exception(
                "interaction_failed kind=%s id=%s %s",
                kind,
                key,
                describe_interaction(interaction),
            )
            if kind != InteractionKind.AUTOCOMPLETE:
                await self._report_failure(interaction, kind, key)
            return True

    async def _dispatch_component(
        self,
        table: PrefixTable,
        interaction: discord.Interaction,
        custom_id: str,
    ) -> bool:
        match = table.resolve(custom_id)
        if match is None:
            logger.debug(
                "interaction_no_handler kind=%s id=%s registered=%s",
                table.kind,
                custom_id,
                ",".join(table),
            )
            return False
        matched_key, handler = match
        logger.info(
            "interaction_dispatch kind=%s id=%s matched=%s %s",
            table.kind,
            custom_id,
            matched_key,
            describe_interaction(interaction),
        )
        await handler(interaction)
        return True

    async def _dispatch_slash(self, interaction: discord.Interaction, name: str) -> bool:
        command = self._slash_commands.get(name)
        if command is None:
            logger.info(
                "slash_command_unavailable name=%s %s", name, describe_interaction(interaction)
            )
            if not interaction.response.is_done():
                await interaction.response.send_message(COMMAND_UNAVAILABLE_MESSAGE, ephemeral=True)
            return False
        logger.info("slash_command_dispatch name=%s %s", name, describe_interaction(interaction))
        await command.handler(interaction)
        return True

    async def _dispatch_autocomplete(self, interaction: discord.Interaction, name: str) -> bool:
        command = self._slash_commands.get(name)
        if command is None or command.autocomplete is None:
            return False
        await command.autocomplete(interaction)
        return True

    async def _report_failure(
        self,
        interaction: discord.Interaction,
        kind: InteractionKind,
        key: str,
    ) -> None:
        """Tell the user something broke, without a second initial response."""
        try:
            if interaction.response.is_done():
                await interaction.followup.send(INTERACTION_ERROR_MESSAGE, ephemeral=True)
            else:
                await interaction.response.send_message(INTERACTION_ERROR_MESSAGE, ephemeral=True)
        except Exception:  # Last-resort handler: token expired or channel gone
            logger.exception("interaction_error_reply_failed kind=%s id=%s", kind, key)
