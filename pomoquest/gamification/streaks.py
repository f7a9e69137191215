"""Daily streak tracking."""

from datetime import date, timedelta
from typing import Optional

from pomoquest.core.config import settings


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days


def within_protection_window(last_active_date: date, today: date) -> bool:
    """True when the gap since the last active day fits the grace window.

    A 48 hour window means exactly one missed calendar day.
    """
    gap_days = days_between(last_active_date, today)
    return 2 <= gap_days and gap_days * 24 <= settings.STREAK_PROTECTION_GRACE_HOURS


def protection_available(
    used_on: Optional[date],
    today: date,
    has_ability: bool
) -> bool:
    """Whether streak protection may be spent today (once per cooldown)."""
    if not has_ability:
        return False
    if used_on is None:
        return True
    return days_between(used_on, today) >= settings.STREAK_PROTECTION_COOLDOWN_DAYS


def update_streak(
    last_active_date: Optional[date],
    current_streak: int,
    today: date,
    has_streak_protection: bool = False
) -> int:
    """Streak value after activity on ``today``."""
    if last_active_date is None:
        return 1

    if last_active_date >= today:
        # Same day, or a clock that went backwards
        return current_streak

    if last_active_date == today - timedelta(days=1):
        return current_streak + 1

    if has_streak_protection and within_protection_window(last_active_date, today):
        return current_streak + 1

    return 1
