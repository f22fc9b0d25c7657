"""Discord embed builders for BobbyBot.

Each builder takes plain domain data and returns a styled ``discord.Embed``.
Nothing here touches the database or the network.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import discord

from bobbybot.core.inhouse import INHOUSE_SIZE
from bobbybot.core.levels import level_progress
from bobbybot.core.teams import MAX_WAITLIST_SIZE, TEAM_SIZE

if TYPE_CHECKING:
    from bobbybot.core.balancing import BalancedTeams, RatedPlayer
    from bobbybot.core.command_router import Command
    from bobbybot.core.inhouse import Inhouse
    from bobbybot.core.teams import Team

COLOR_ECONOMY = 0xF1C40F  # Gold
COLOR_DECLINED = 0xE74C3C  # Red
COLOR_LEVEL = 0x5865F2  # Blurple
COLOR_ALERT = 0xE67E22  # Orange
COLOR_VALORANT = 0xFF4655  # Valorant red
COLOR_SUCCESS = 0x2ECC71  # Green
COLOR_INHOUSE = 0x9B59B6  # Purple
COLOR_HELP = 0x3498DB  # Blue

CURRENCY = "Bobby Bucks"
EMBED_FIELD_LIMIT = 1024
EMBED_MAX_FIELDS = 25


def format_amount(amount: int) -> str:
    return f"{amount:,}"


def truncate(text: str, limit: int = EMBED_FIELD_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _medal(position: int) -> str:
    return {1: "🥇", 2: "🥈", 3: "🥉"}.get(position, f"**{position}.**")


# --- Economy ---


def build_balance_embed(display_name: str, balance: int, rank: int | None = None) -> discord.Embed:
    embed = discord.Embed(
        title=f"{display_name}'s Balance",
        description=f"💰 **{format_amount(balance)}** {CURRENCY}",
        color=COLOR_ECONOMY,
    )
    if rank is not None and balance > 0:
        embed.set_footer(text=f"Rank #{rank} on the server")
    return embed


def build_baltop_embed(
    entries: Sequence[tuple[str, int]],
    total_economy: int,
    house_balance: int,
) -> discord.Embed:
    """Leaderboard of ``(display name, balance)`` pairs, richest first."""
    embed = discord.Embed(title="💰 Richest Members", color=COLOR_ECONOMY)
    if entries:
        embed.description = "\n".join(
            f"{_medal(i)} {name}: {format_amount(balance)}"
            for i, (name, balance) in enumerate(entries, start=1)
        )
    else:
        embed.description = "_Nobody has any Bobby Bucks yet._"
    embed.add_field(name="Total Economy", value=format_amount(total_economy), inline=True)
    embed.add_field(name="House", value=format_amount(house_balance), inline=True)
    return embed


def build_spend_embed(display_name: str, amount: int, new_balance: int) -> discord.Embed:
    embed = discord.Embed(
        title="Purchase Complete",
        description=f"{display_name} spent **{format_amount(amount)}** {CURRENCY}.",
        color=COLOR_SUCCESS,
    )
    embed.add_field(name="New Balance", value=format_amount(new_balance))
    return embed


def build_declined_embed(display_name: str, amount: int, balance: int) -> discord.Embed:
    embed = discord.Embed(
        title="Transaction Declined",
        description=(
            f"{display_name} tried to spend **{format_amount(amount)}** {CURRENCY} "
            f"but only has **{format_amount(balance)}**."
        ),
        color=COLOR_DECLINED,
    )
    embed.add_field(name="Short By", value=format_amount(amount - balance))
    return embed


def build_economy_embed(total_economy: int, house_balance: int, holders: int) -> discord.Embed:
    embed = discord.Embed(title="📊 Server Economy", color=COLOR_ECONOMY)
    embed.add_field(name="In Circulation", value=format_amount(total_economy), inline=True)
    embed.add_field(name="House", value=format_amount(house_balance), inline=True)
    embed.add_field(name="Holders", value=str(holders), inline=True)
    return embed


# --- Leveling ---


def build_level_embed(display_name: str, xp: int, messages: int = 0) -> discord.Embed:
    level, into, needed = level_progress(xp)
    filled = int(10 * into / needed) if needed else 10
    bar = "█" * filled + "░" * (10 - filled)
    embed = discord.Embed(title=f"{display_name}'s Level", color=COLOR_LEVEL)
    embed.add_field(name="Level", value=str(level), inline=True)
    embed.add_field(name="Total XP", value=format_amount(xp), inline=True)
    if messages:
        embed.add_field(name="Messages", value=format_amount(messages), inline=True)
    embed.add_field(
        name="Progress",
        value=f"`{bar}` {format_amount(into)}/{format_amount(needed)} XP",
        inline=False,
    )
    return embed


def build_level_leaderboard_embed(entries: Sequence[tuple[str, int]]) -> discord.Embed:
    """Leaderboard of ``(display name, xp)`` pairs, highest first."""
    embed = discord.Embed(title="🏆 Level Leaderboard", color=COLOR_LEVEL)
    if not entries:
        embed.description = "_No XP earned yet. Start chatting!_"
        return embed
    lines = []
    for i, (name, xp) in enumerate(entries, start=1):
        level, _, _ = level_progress(xp)
        lines.append(f"{_medal(i)} {name}: Level {level} ({format_amount(xp)} XP)")
    embed.description = "\n".join(lines)
    return embed


# --- Alerts ---


def build_alert_embed(
    *,
    keyword: str,
    author: str,
    author_id: int,
    channel: str,
    content: str,
    jump_url: str,
) -> discord.Embed:
    embed = discord.Embed(
        title="🚨 Keyword Alert",
        description=f"Keyword **{keyword}** was mentioned.",
        color=COLOR_ALERT,
    )
    embed.add_field(name="User", value=f"{author} (<@{author_id}>)", inline=True)
    embed.add_field(name="Channel", value=f"#{channel}", inline=True)
    embed.add_field(name="Message", value=truncate(content) or "_empty_", inline=False)
    embed.add_field(name="Jump", value=f"[Go to message]({jump_url})", inline=False)
    return embed


# --- Valorant teams ---


def _roster_lines(team: Team, ranks: dict[int, str] | None = None) -> str:
    ranks = ranks or {}
    lines = []
    for slot in range(TEAM_SIZE):
        if slot < team.size:
            member = team.roster[slot]
            crown = "👑 " if slot == 0 else ""
            rank = f" · {ranks[member.user_id]}" if member.user_id in ranks else ""
            lines.append(f"{slot + 1}. {crown}{member.mention}{rank}")
        else:
            lines.append(f"{slot + 1}. _Open_")
    return "\n".join(lines)


def build_team_embed(team: Team, ranks: dict[int, str] | None = None) -> discord.Embed:
    title = team.name or f"{team.leader.display_name}'s Valorant Team"
    embed = discord.Embed(
        title=f"🎯 {title}",
        description=f"**{team.size}/{TEAM_SIZE}** players",
        color=COLOR_VALORANT,
    )
    embed.add_field(name="Roster", value=_roster_lines(team, ranks), inline=False)
    if team.waitlist:
        embed.add_field(
            name=f"Waitlist ({len(team.waitlist)}/{MAX_WAITLIST_SIZE})",
            value="\n".join(m.mention for m in team.waitlist),
            inline=False,
        )
    if team.target_time is not None:
        embed.add_field(
            name="Starts",
            value=discord.utils.format_dt(team.target_time, style="R"),
            inline=False,
        )
    embed.set_footer(text="Click Join to fill a spot")
    return embed


def build_team_complete_embed(
    team: Team,
    ranks: dict[int, str] | None = None,
    average_rank: str | None = None,
) -> discord.Embed:
    title = team.name or f"{team.leader.display_name}'s Valorant Team"
    embed = discord.Embed(
        title=f"🎉 {title} is full!",
        description="The squad is ready. Good luck out there!",
        color=COLOR_SUCCESS,
    )
    embed.add_field(name="Roster", value=_roster_lines(team, ranks), inline=False)
    if average_rank:
        embed.add_field(name="Average Rank", value=average_rank, inline=True)
    embed.set_footer(text="GLHF!")
    return embed


def build_team_closed_embed(team: Team) -> discord.Embed:
    title = f"🔒 {team.name} (Closed)" if team.name else "🔒 Team Closed"
    return discord.Embed(
        title=title,
        description=f"Team closed by leader with {team.size} players.\n"
        + " ".join(m.mention for m in team.roster),
        color=COLOR_ALERT,
    )


def build_team_disbanded_embed(reason: str = "The leader disbanded this team.") -> discord.Embed:
    return discord.Embed(title="❌ Team Disbanded", description=reason, color=COLOR_DECLINED)


# --- In-house ---


def _team_lines(players: Sequence[RatedPlayer]) -> str:
    return "\n".join(f"<@{p.user_id}> · {p.rank_name}" for p in players) or "_empty_"


def build_inhouse_embed(inhouse: Inhouse) -> discord.Embed:
    embed = discord.Embed(
        title="🏟️ Valorant In-House",
        description=f"Hosted by {inhouse.host.mention}\n**{inhouse.size}/{INHOUSE_SIZE}** players",
        color=COLOR_INHOUSE,
    )
    embed.add_field(
        name="Players",
        value="\n".join(f"{i}. {m.mention}" for i, m in enumerate(inhouse.lobby, start=1)),
        inline=False,
    )
    if inhouse.is_full:
        embed.set_footer(text="Lobby full. The host can balance teams.")
    return embed


def build_balanced_teams_embed(teams: BalancedTeams) -> discord.Embed:
    embed = discord.Embed(title="⚖️ Balanced Teams", color=COLOR_INHOUSE)
    embed.add_field(
        name=f"Team 1 (avg {teams.average(teams.team1):.0f})",
        value=_team_lines(teams.team1),
        inline=True,
    )
    embed.add_field(
        name=f"Team 2 (avg {teams.average(teams.team2):.0f})",
        value=_team_lines(teams.team2),
        inline=True,
    )
    embed.set_footer(text=f"MMR difference: {teams.mmr_difference}")
    return embed


# --- Help ---


def _command_line(command: Command, prefix: str) -> str:
    usage = command.usage or command.name
    line = f"`{prefix}{usage}`"
    if command.description:
        line += f": {command.description}"
    return line


def build_help_embeds(commands: Sequence[Command], prefix: str) -> list[discord.Embed]:
    """Help pages grouped by feature, split to respect embed field limits."""
    groups: dict[str, list[str]] = {}
    for command in commands:
        groups.setdefault(command.feature or "general", []).append(_command_line(command, prefix))

    fields: list[tuple[str, str]] = []
    for feature, lines in groups.items():
        title = feature.replace("_", " ").title()
        chunk: list[str] = []
        size = 0
        for line in lines:
            line = truncate(line)
            if chunk and size + len(line) + 1 > EMBED_FIELD_LIMIT:
                fields.append((title, "\n".join(chunk)))
                title = f"{feature.replace('_', ' ').title()} (cont.)"
                chunk, size = [], 0
            chunk.append(line)
            size += len(line) + 1
        if chunk:
            fields.append((title, "\n".join(chunk)))

    embeds: list[discord.Embed] = []
    for start in range(0, max(len(fields), 1), EMBED_MAX_FIELDS):
        embed = discord.Embed(
            title="📖 BobbyBot Commands" if not embeds else "📖 BobbyBot Commands (cont.)",
            color=COLOR_HELP,
        )
        for name, value in fields[start : start + EMBED_MAX_FIELDS]:
            embed.add_field(name=name, value=value, inline=False)
        embeds.append(embed)
    if not fields:
        embeds[0].description = "_No commands are registered._"
    return embeds
