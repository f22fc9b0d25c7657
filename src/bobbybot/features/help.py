"""Command listing, built from whatever the command router has registered."""

from __future__ import annotations

import discord

from bobbybot.core.command_router import Command, CommandRouter
from bobbybot.core.interaction_router import SlashCommand
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.discord.embeds import build_help_embeds


class Help:
    def __init__(self, router: CommandRouter) -> None:
        self.router = router

    def embeds(self) -> list[discord.Embed]:
        return build_help_embeds(self.router.commands, self.router.prefix)

    async def show(self, message: discord.Message, args: list[str]) -> None:
        for embed in self.embeds():
            await message.channel.send(embed=embed)

    async def show_slash(self, interaction: discord.Interaction) -> None:
        embeds = self.embeds()
        await interaction.response.send_message(embeds=embeds[:10], ephemeral=True)


def setup(context: FeatureContext) -> Feature:
    if context.command_router is None:
        msg = "help needs the command router"
        raise RuntimeError(msg)
    help_ = Help(context.command_router)
    return Feature(
        name="help",
        commands=[
            Command(
                "help",
                help_.show,
                aliases=("commands", "cmdlist", "commandlist"),
                usage="help",
                description="List every command",
            ),
        ],
        slash_commands=[SlashCommand("help", help_.show_slash, "List every command")],
    )
