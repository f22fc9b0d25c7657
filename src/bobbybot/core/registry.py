"""Feature bootstrap: wire every feature module into the two routers.

Each feature module exposes ``setup(context) -> Feature | None``. The
``Feature`` lists the commands, message processors, component handlers and
slash commands the module owns; ``register_features`` checks them for
conflicts and registers them. A module that raises while building or
registering is logged and skipped, and the bot runs without it. Returning
None means the feature is disabled by configuration.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bobbybot.core.command_router import (
    Command,
    CommandRouter,
    DuplicateRegistrationError,
    MessageProcessor,
)
from bobbybot.core.interaction_router import (
    InteractionHandler,
    InteractionRouter,
    PrefixTable,
    SlashCommand,
)

if TYPE_CHECKING:
    import discord
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bobbybot.config import Settings
    from bobbybot.core.ranks import RankClient

logger = logging.getLogger(__name__)


@dataclass
class Feature:
    """Everything one feature module contributes to the routers."""

    name: str
    commands: list[Command] = field(default_factory=list)
    processors: list[MessageProcessor] = field(default_factory=list)
    buttons: dict[str, InteractionHandler] = field(default_factory=dict)
    select_menus: dict[str, InteractionHandler] = field(default_factory=dict)
    modals: dict[str, InteractionHandler] = field(default_factory=dict)
    slash_commands: list[SlashCommand] = field(default_factory=list)
    dispose: Callable[[], None] | None = None


@dataclass
class FeatureContext:
    """Shared services handed to every feature's ``setup``.

    ``client`` is only for read-only lookups (channels, the bot user). The
    command router is exposed so the help feature can list commands.
    """

    settings: Settings
    engine: AsyncEngine
    client: discord.Client | None = None
    rank_client: RankClient | None = None
    command_router: CommandRouter | None = None


FeatureFactory = Callable[[FeatureContext], "Feature | None"]


@dataclass
class RegistryReport:
    loaded: list[Feature] = field(default_factory=list)
    disabled: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    command_count: int = 0
    processor_count: int = 0

    @property
    def loaded_names(self) -> list[str]:
        return [f.name for f in self.loaded]

    def dispose_all(self) -> None:
        """Run every loaded feature's dispose hook; failures are logged."""
        for feature in self.loaded:
            if feature.dispose is None:
                continue
            try:
                feature.dispose()
            except Exception:  # Last-resort handler: shutdown must reach every feature
                logger.exception("feature_dispose_failed feature=%s", feature.name)


def _factory_name(factory: FeatureFactory) -> str:
    module = getattr(factory, "__module__", "") or ""
    return module.rsplit(".", 1)[-1] or getattr(factory, "__qualname__", repr(factory))


def _check_table(table: PrefixTable, keys: Mapping[str, InteractionHandler]) -> None:
    taken = [key for key in keys if key in table]
    if taken:
        msg = f"{table.kind} id(s) already registered: {', '.join(taken)}"
        raise DuplicateRegistrationError(msg)


def check_conflicts(
    feature: Feature,
    command_router: CommandRouter,
    interaction_router: InteractionRouter,
) -> None:
    """Raise DuplicateRegistrationError if *feature* collides with anything registered.

    Checked up front so a rejected feature leaves no partial registrations.
    """
    seen: set[str] = set()
    for command in feature.commands:
        for name in command.names:
            if name in seen or command_router.get(name) is not None:
                msg = f"command name already registered: {name}"
                raise DuplicateRegistrationError(msg)
            seen.add(name)
    _check_table(interaction_router.buttons, feature.buttons)
    _check_table(interaction_router.select_menus, feature.select_menus)
    _check_table(interaction_router.modals, feature.modals)
    slash_names = [c.name for c in feature.slash_commands]
    if len(set(slash_names)) != len(slash_names):
        msg = f"duplicate slash command in feature {feature.name}"
        raise DuplicateRegistrationError(msg)
    for name in slash_names:
        if interaction_router.get_slash_command(name) is not None:
            msg = f"slash command already registered: /{name}"
            raise DuplicateRegistrationError(msg)


def register_feature(
    feature: Feature,
    command_router: CommandRouter,
    interaction_router: InteractionRouter,
) -> None:
    check_conflicts(feature, command_router, interaction_router)
    command_router.register_commands(
        [dataclasses.replace(c, feature=c.feature or feature.name) for c in feature.commands]
    )
    for processor in feature.processors:
        command_router.register_processor(processor)
    interaction_router.register_buttons(feature.buttons)
    interaction_router.register_select_menus(feature.select_menus)
    interaction_router.register_modals(feature.modals)
    interaction_router.register_slash_commands(feature.slash_commands)


def register_features(
    factories: list[FeatureFactory],
    context: FeatureContext,
    command_router: CommandRouter,
    interaction_router: InteractionRouter,
) -> RegistryReport:
    """Build and register every feature. Never raises for a single bad feature."""
    report = RegistryReport()
    for factory in factories:
        name = _factory_name(factory)
        try:
            feature = factory(context)
            if feature is None:
                report.disabled.append(name)
                logger.info("feature_disabled feature=%s", name)
                continue
            name = feature.name
            register_feature(feature, command_router, interaction_router)
        except Exception as exc:  # Registry boundary: one broken feature must not stop startup
            logger.exception("feature_load_failed feature=%s", name)
            report.skipped[name] = f"{type(exc).__name__}: {exc}"
            continue
        report.loaded.append(feature)
        logger.info(
            "feature_loaded feature=%s commands=%d processors=%d components=%d slash=%d",
            feature.name,
            len(feature.commands),
            len(feature.processors),
            len(feature.buttons) + len(feature.select_menus) + len(feature.modals),
            len(feature.slash_commands),
        )

    report.command_count = len(command_router.commands)
    report.processor_count = command_router.processor_count
    logger.info(
        "features_registered loaded=%d disabled=%d skipped=%d commands=%d processors=%d",
        len(report.loaded),
        len(report.disabled),
        len(report.skipped),
        report.command_count,
        report.processor_count,
    )
    return report
