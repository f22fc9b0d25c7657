"""Valorant rank models.

Competitive tiers follow Riot's numbering: 0 is unranked, 3-26 run Iron 1
through Immortal 3, 27 is Radiant (1 and 2 are unused).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

MMR_PER_TIER = 100

RANKS: dict[int, str] = {
    0: "Unranked",
    3: "Iron 1",
    4: "Iron 2",
    5: "Iron 3",
    6: "Bronze 1",
    7: "Bronze 2",
    8: "Bronze 3",
    9: "Silver 1",
    10: "Silver 2",
    11: "Silver 3",
    12: "Gold 1",
    13: "Gold 2",
    14: "Gold 3",
    15: "Platinum 1",
    16: "Platinum 2",
    17: "Platinum 3",
    18: "Diamond 1",
    19: "Diamond 2",
    20: "Diamond 3",
    21: "Ascendant 1",
    22: "Ascendant 2",
    23: "Ascendant 3",
    24: "Immortal 1",
    25: "Immortal 2",
    26: "Immortal 3",
    27: "Radiant",
}


def rank_name(tier: int) -> str:
    return RANKS.get(tier, RANKS[0])


class RankInfo(BaseModel):
    """A player's current competitive rank."""

    model_config = ConfigDict(frozen=True)

    tier: int = Field(ge=0, le=27)
    rr: int = Field(default=0, ge=0)

    @property
    def name(self) -> str:
        return rank_name(self.tier)

    @property
    def mmr(self) -> int:
        """Balancing score: 100 per tier plus ranked rating."""
        return self.tier * MMR_PER_TIER + self.rr


class RiotAccount(BaseModel):
    """A Riot ID (``name#tag``) plus the shard its ranked data lives on."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=50)
    tag: str = Field(min_length=1, max_length=10)
    region: str = "na"

    @classmethod
    def parse(cls, riot_id: str, region: str = "na") -> RiotAccount:
        """Parse ``Name#TAG``. Raises ValueError on anything else."""
        name, sep, tag = riot_id.rpartition("#")
        if not sep or not name.strip() or not tag.strip():
            msg = f"expected Name#TAG, got {riot_id!r}"
            raise ValueError(msg)
        return cls(name=name.strip(), tag=tag.strip(), region=region.lower())

    def __str__(self) -> str:
        return f"{self.name}#{self.tag}"
