"""Team-builder state: rosters, waitlists, and the stores that own them.

Pure state, no Discord calls. The Valorant team feature renders these
objects and drives their timers. Every ``Team`` owns a ``TimerGroup`` and
removing a team from its store disposes it.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Generic, Protocol, TypeVar

from bobbybot.core.timers import TimerGroup

logger = logging.getLogger(__name__)

TEAM_SIZE = 5
MAX_WAITLIST_SIZE = 5
MIN_CLOSE_TEAM_SIZE = 2
MAX_ACTIVE_TEAMS = 50


class TeamError(Exception):
    """A roster change that is not allowed. The message is shown to the user."""


@dataclass(frozen=True)
class Member:
    user_id: int
    display_name: str

    @property
    def mention(self) -> str:
        return f"<@{self.user_id}>"


class _Disposable(Protocol):
    id: str

    def dispose(self) -> None: ...


T = TypeVar("T", bound=_Disposable)


class BoundedStore(Generic[T]):
    """Insertion-ordered store that evicts (and disposes) the oldest entry when full."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self._items: OrderedDict[str, T] = OrderedDict()

    def add(self, item: T) -> None:
        self._items[item.id] = item
        while len(self._items) > self.capacity:
            _, evicted = self._items.popitem(last=False)
            logger.info("store_evicted id=%s", evicted.id)
            evicted.dispose()

    def get(self, item_id: str) -> T | None:
        return self._items.get(item_id)

    def remove(self, item_id: str) -> T | None:
        """Remove and dispose an entry. Returns it, or None if absent."""
        item = self._items.pop(item_id, None)
        if item is not None:
            item.dispose()
        return item

    def all(self) -> list[T]:
        return list(self._items.values())

    def dispose_all(self) -> None:
        for item in self._items.values():
            item.dispose()
        self._items.clear()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class Team:
    """A five-stack being assembled in one channel."""

    id: str
    guild_id: int
    channel_id: int
    leader: Member
    name: str | None = None
    members: list[Member] = field(default_factory=list)
    waitlist: list[Member] = field(default_factory=list)
    message_id: int | None = None
    target_time: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    timers: TimerGroup = field(init=False)

    def __post_init__(self) -> None:
        self.timers = TimerGroup(owner=f"team:{self.id}")

    @property
    def roster(self) -> list[Member]:
        return [self.leader, *self.members]

    @property
    def size(self) -> int:
        return 1 + len(self.members)

    @property
    def is_full(self) -> bool:
        return self.size >= TEAM_SIZE

    @property
    def waitlist_full(self) -> bool:
        return len(self.waitlist) >= MAX_WAITLIST_SIZE

    def is_leader(self, user_id: int) -> bool:
        return self.leader.user_id == user_id

    def has_member(self, user_id: int) -> bool:
        return any(m.user_id == user_id for m in self.roster)

    def on_waitlist(self, user_id: int) -> bool:
        return any(m.user_id == user_id for m in self.waitlist)

    def join(self, member: Member) -> None:
        if self.has_member(member.user_id):
            raise TeamError("You're already in this team!")
        if self.is_full:
            raise TeamError("Team is full!")
        self.waitlist = [m for m in self.waitlist if m.user_id != member.user_id]
        self.members.append(member)

    def leave(self, user_id: int) -> Member | None:
        """Remove a member; the first waitlisted player takes the spot.

        Returns the promoted member, if any.
        """
        if self.is_leader(user_id):
            raise TeamError("Leaders cannot leave. Disband the team instead.")
        before = len(self.members)
        self.members = [m for m in self.members if m.user_id != user_id]
        if len(self.members) == before:
            raise TeamError("You're not in this team!")
        if self.waitlist and not self.is_full:
            promoted = self.waitlist.pop(0)
            self.members.append(promoted)
            return promoted
        return None

    def join_waitlist(self, member: Member) -> None:
        if self.has_member(member.user_id):
            raise TeamError("You're already in this team!")
        if not self.is_full:
            raise TeamError("The team still has open spots. Join it directly!")
        if self.on_waitlist(member.user_id):
            raise TeamError("You're already on the waitlist!")
        if self.waitlist_full:
            raise TeamError("The waitlist is full!")
        self.waitlist.append(member)

    def leave_waitlist(self, user_id: int) -> None:
        if not self.on_waitlist(user_id):
            raise TeamError("You're not on the waitlist!")
        self.waitlist = [m for m in self.waitlist if m.user_id != user_id]

    def require_leader(self, user_id: int, action: str) -> None:
        if not self.is_leader(user_id):
            raise TeamError(f"Only the team leader can {action}!")

    def dispose(self) -> None:
        self.timers.dispose()


class TeamStore(BoundedStore[Team]):
    """Active teams keyed by team id."""

    def __init__(self, capacity: int = MAX_ACTIVE_TEAMS) -> None:
        super().__init__(capacity)
