"""In-house lobby state: ten players, one host, balanced once full."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from bobbybot.core.balancing import BalancedTeams
from bobbybot.core.teams import BoundedStore, Member, TeamError
from bobbybot.core.timers import TimerGroup

INHOUSE_SIZE = 10
MAX_ACTIVE_INHOUSES = 30
MAX_INHOUSES_PER_HOST = 1


@dataclass
class Inhouse:
    id: str
    guild_id: int
    channel_id: int
    host: Member
    players: list[Member] = field(default_factory=list)
    message_id: int | None = None
    teams: BalancedTeams | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    timers: TimerGroup = field(init=False)

    def __post_init__(self) -> None:
        self.timers = TimerGroup(owner=f"inhouse:{self.id}")

    @property
    def lobby(self) -> list[Member]:
        return [self.host, *self.players]

    @property
    def size(self) -> int:
        return 1 + len(self.players)

    @property
    def is_full(self) -> bool:
        return self.size >= INHOUSE_SIZE

    def has_player(self, user_id: int) -> bool:
        return any(m.user_id == user_id for m in self.lobby)

    def join(self, member: Member) -> None:
        if self.has_player(member.user_id):
            raise TeamError("You're already in this in-house!")
        if self.is_full:
            raise TeamError("This in-house is full!")
        self.players.append(member)
        self.teams = None

    def leave(self, user_id: int) -> None:
        if self.host.user_id == user_id:
            raise TeamError("The host can't leave. Cancel the in-house instead.")
        before = len(self.players)
        self.players = [m for m in self.players if m.user_id != user_id]
        if len(self.players) == before:
            raise TeamError("You're not in this in-house!")
        self.teams = None

    def dispose(self) -> None:
        self.timers.dispose()


class InhouseStore(BoundedStore[Inhouse]):
    """Active in-house lobbies keyed by id."""

    def __init__(self, capacity: int = MAX_ACTIVE_INHOUSES) -> None:
        super().__init__(capacity)

    def hosted_by(self, user_id: int) -> list[Inhouse]:
        """Lobbies *user_id* hosts that are still gathering players."""
        return [i for i in self.all() if i.host.user_id == user_id and i.teams is None]
