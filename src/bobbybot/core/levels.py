"""XP curve: level = floor(0.1 * sqrt(xp)), so level n starts at (10n)^2 XP."""

from __future__ import annotations

import math

XP_PER_MESSAGE_MIN = 15
XP_PER_MESSAGE_MAX = 25
XP_COOLDOWN_SECONDS = 60


def level_for_xp(xp: int) -> int:
    if xp <= 0:
        return 0
    level = int(0.1 * math.sqrt(xp))
    # Float error can land just under an exact threshold (e.g. 0.1 * sqrt(8100)).
    while xp_for_level(level + 1) <= xp:
        level += 1
    while level > 0 and xp_for_level(level) > xp:
        level -= 1
    return level


def xp_for_level(level: int) -> int:
    """Total XP needed to reach *level*."""
    return round((level / 0.1) ** 2)


def level_progress(xp: int) -> tuple[int, int, int]:
    """Return ``(level, xp_into_level, xp_needed_for_next_level)``."""
    level = level_for_xp(xp)
    floor_xp = xp_for_level(level)
    return level, xp - floor_xp, xp_for_level(level + 1) - floor_xp
