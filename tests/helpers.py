"""Builders for states and session events used across tests."""

from datetime import date, datetime, timedelta

from pomoquest.gamification.progression_engine import new_progression_state
from pomoquest.models.progression import ProgressionState

# A Tuesday, outside every time-of-day achievement window
BASE_TIME = datetime(2026, 10, 20, 10, 0)
TODAY = BASE_TIME.date()


def at(days: int = 0, hour: int = 10, minute: int = 0) -> datetime:
    """Timestamp ``days`` after the base Tuesday."""
    return (BASE_TIME + timedelta(days=days)).replace(hour=hour, minute=minute)


def day(offset: int = 0) -> date:
    return TODAY + timedelta(days=offset)


def make_state(user_id: str = "user-1", **overrides) -> ProgressionState:
    """Fresh state with no active abilities, then ``overrides`` applied.

    Abilities are off by default so XP numbers in tests are the plain formula.
    """
    data = new_progression_state(user_id).model_dump()
    data["active_ability_ids"] = ()
    data.update(overrides)
    return ProgressionState.model_validate(data)


def session(session_type: str = "focus", minutes: int = 25, occurred_at: datetime = None, **kwargs) -> dict:
    return {
        "session_type": session_type,
        "duration_minutes": minutes,
        "occurred_at": occurred_at or at(),
        **kwargs,
    }
