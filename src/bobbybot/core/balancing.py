"""Greedy two-team balancing for in-house matches.

Players are taken strongest first and each goes to whichever team currently
has the lower MMR total (team 1 on ties). A team that has reached half the
lobby is skipped, so an even lobby always splits evenly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RatedPlayer:
    user_id: int
    display_name: str
    mmr: int = 0
    rank_name: str = "Unranked"


@dataclass(frozen=True)
class BalancedTeams:
    team1: list[RatedPlayer] = field(default_factory=list)
    team2: list[RatedPlayer] = field(default_factory=list)

    @property
    def team1_mmr(self) -> int:
        return sum(p.mmr for p in self.team1)

    @property
    def team2_mmr(self) -> int:
        return sum(p.mmr for p in self.team2)

    @property
    def mmr_difference(self) -> int:
        return abs(self.team1_mmr - self.team2_mmr)

    @staticmethod
    def average(team: list[RatedPlayer]) -> float:
        return sum(p.mmr for p in team) / len(team) if team else 0.0


def balance_teams(players: list[RatedPlayer]) -> BalancedTeams:
    """Split *players* into two teams with MMR totals as close as greedy allows."""
    capacity = math.ceil(len(players) / 2)
    team1: list[RatedPlayer] = []
    team2: list[RatedPlayer] = []
    total1 = total2 = 0

    # sorted() is stable: equal MMR keeps join order.
    for player in sorted(players, key=lambda p: p.mmr, reverse=True):
        prefer_team1 = total1 <= total2
        if prefer_team1 and len(team1) >= capacity:
            prefer_team1 = False
        elif not prefer_team1 and len(team2) >= capacity:
            prefer_team1 = True

        if prefer_team1:
            team1.append(player)
            total1 += player.mmr
        else:
            team2.append(player)
            total2 += player.mmr

    return BalancedTeams(team1=team1, team2=team2)
