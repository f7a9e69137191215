"""Level thresholds and XP calculation."""

import math
from typing import NamedTuple, TYPE_CHECKING

from pomoquest.core.config import settings

if TYPE_CHECKING:
    from pomoquest.models.progression import SessionEvent


# XP required to leave each of the first 20 levels (index is level - 1)
XP_REQUIREMENTS = [
    100, 200, 300, 400, 500, 600, 700, 800, 900, 1000,
    1100, 1200, 1300, 1400, 1500, 1600, 1700, 1800, 1900, 2000
]
XP_STEP_BEYOND_TABLE = 200

# Team size -> XP multiplier; 5 and above share the cap
TEAM_MULTIPLIERS = {1: 1.0, 2: 1.2, 3: 1.3, 4: 1.4}
TEAM_MULTIPLIER_CAP = 1.5


class XpResult(NamedTuple):
    new_level: int
    new_xp: int
    did_level_up: bool
    levels_gained: int


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def xp_threshold(level: int) -> int:
    """XP needed to advance from ``level`` to ``level + 1``."""
    if level <= 0:
        return 0
    if level <= len(XP_REQUIREMENTS):
        return XP_REQUIREMENTS[level - 1]
    return XP_REQUIREMENTS[-1] + (level - len(XP_REQUIREMENTS)) * XP_STEP_BEYOND_TABLE


def team_multiplier(team_size: int) -> float:
    if team_size <= 1:
        return 1.0
    return TEAM_MULTIPLIERS.get(team_size, TEAM_MULTIPLIER_CAP)


def base_session_xp(duration_minutes: int) -> int:
    steps = duration_minutes // settings.XP_MINUTES_STEP
    return settings.XP_BASE_SESSION + steps * settings.XP_PER_STEP


def calculate_session_xp(event: "SessionEvent", xp_boost_percent: int = 0) -> int:
    """XP earned for one completed session.

    Multipliers apply in a fixed order: focus, team size, ability boost.
    """
    xp = float(base_session_xp(event.duration_minutes))

    if event.session_type == "focus":
        xp *= settings.FOCUS_XP_MULTIPLIER

    if event.is_team_session:
        xp *= team_multiplier(event.team_size)

    if xp_boost_percent:
        xp *= 1 + xp_boost_percent / 100

    return max(0, round_half_up(xp))


def apply_xp(level: int, xp: int, xp_delta: int) -> XpResult:
    """Add XP and carry the remainder through as many level-ups as it covers."""
    if xp_delta < 0:
        raise ValueError("xp_delta must be non-negative, use reduce_xp")

    new_level = max(1, level)
    new_xp = max(0, xp) + xp_delta

    while new_xp >= xp_threshold(new_level):
        new_xp -= xp_threshold(new_level)
        new_level += 1

    levels_gained = new_level - max(1, level)
    return XpResult(new_level, new_xp, levels_gained > 0, levels_gained)


def reduce_xp(level: int, xp: int, amount: int) -> XpResult:
    """Remove XP, walking levels down and clamping at level 1 with 0 XP."""
    if amount < 0:
        raise ValueError("amount must be non-negative")

    new_level = max(1, level)
    new_xp = xp - amount

    while new_xp < 0 and new_level > 1:
        new_level -= 1
        new_xp += xp_threshold(new_level)

    if new_xp < 0:
        new_xp = 0

    return XpResult(new_level, new_xp, False, new_level - max(1, level))
