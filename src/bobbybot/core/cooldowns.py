"""Per-key cooldown windows (per user, per user+keyword, ...)."""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable

PRUNE_INTERVAL_SECONDS = 300


class CooldownTracker:
    """Remembers when each key last fired and whether it may fire again.

    The clock is injectable so tests can advance time without sleeping.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._last: dict[Hashable, float] = {}

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def remaining(self, key: Hashable) -> float:
        """Seconds until *key* may fire again (0 when ready)."""
        last = self._last.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.seconds - (self._clock() - last))

    def ready(self, key: Hashable) -> bool:
        return self.remaining(key) == 0.0

    def touch(self, key: Hashable) -> None:
        self._last[key] = self._clock()

    def try_acquire(self, key: Hashable) -> bool:
        """Start a new window for *key* if it is ready. Returns whether it was."""
        if not self.ready(key):
            return False
        self.touch(key)
        return True

    def reset(self, key: Hashable) -> None:
        self._last.pop(key, None)

    def prune(self) -> int:
        """Forget expired keys. Returns how many were dropped."""
        now = self._clock()
        expired = [k for k, last in self._last.items() if now - last >= self.seconds]
        for key in expired:
            del self._last[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._last)


class PeriodicPrune:
    """Runs *prune* at most once per *interval* seconds of *clock* time."""

    def __init__(
        self,
        prune: Callable[[], int],
        interval: float = PRUNE_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._prune = prune
        self.interval = interval
        self._clock = clock
        self._last = clock()

    def __call__(self) -> int:
        """Prune if the interval has elapsed. Returns how many entries were dropped."""
        now = self._clock()
        if now - self._last < self.interval:
            return 0
        self._last = now
        return self._prune()
