"""Progression state, session events and notifications."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from pomoquest.core.exceptions import SessionValidationError
from pomoquest.gamification.levels import xp_threshold


class SessionType(str, Enum):
    """Timer session types."""
    FOCUS = "focus"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"


class CharacterType(str, Enum):
    """Character evolution branches."""
    BALANCED = "balanced"
    FOCUSED = "focused"
    CONSISTENT = "consistent"


class NotificationKind(str, Enum):
    """Events the UI layer presents as toasts or modals."""
    LEVEL_UP = "level_up"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    CHARACTER_EVOLVED = "character_evolved"
    GAME_UNLOCKED = "game_unlocked"


class SessionEvent(BaseModel):
    """One completed timer session."""

    model_config = ConfigDict(frozen=True)

    session_type: SessionType
    duration_minutes: int = Field(gt=0)
    is_team_session: bool = False
    team_size: int = Field(default=1, ge=1)
    occurred_at: datetime
    team_session_id: Optional[str] = None

    @classmethod
    def parse(cls, data: Any) -> "SessionEvent":
        """Validate raw input, raising SessionValidationError on bad data."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"]) or None
            raise SessionValidationError(
                f"Invalid session event: {first['msg']}",
                field=field
            ) from e


class ProgressionState(BaseModel):
    """Everything progression-related for one user.

    Instances are immutable; every operation returns a new state.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str

    # Level / XP
    level: int = Field(default=1, ge=1)
    xp: int = Field(default=0, ge=0)
    total_xp_earned: int = Field(default=0, ge=0)

    # Streak
    streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_date: Optional[date] = None
    streak_protection_used_on: Optional[date] = None

    # Counters
    total_sessions: int = Field(default=0, ge=0)
    focus_sessions: int = Field(default=0, ge=0)
    total_minutes: int = Field(default=0, ge=0)
    total_active_days: int = Field(default=0, ge=0)
    team_sessions_completed: int = Field(default=0, ge=0)
    team_session_minutes: int = Field(default=0, ge=0)

    # Achievements, in unlock order
    unlocked_achievement_ids: Tuple[str, ...] = ()

    # Character
    character_evolution_path: Tuple[CharacterType, ...] = (CharacterType.BALANCED,)
    character_level: int = Field(default=1, ge=1)
    character_exp: int = Field(default=0, ge=0)
    active_ability_ids: Tuple[str, ...] = ()

    # Mini-games
    played_game_ids: Tuple[str, ...] = ()
    game_play_count: int = Field(default=0, ge=0)
    game_high_scores: Dict[str, int] = Field(default_factory=dict)
    unlocked_game_ids: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def check_invariants(self):
        if self.xp >= xp_threshold(self.level):
            raise ValueError(
                f"xp {self.xp} must be below threshold {xp_threshold(self.level)} for level {self.level}"
            )
        if len(self.character_evolution_path) != self.character_level:
            raise ValueError("character_evolution_path length must equal character_level")
        return self

    @property
    def xp_to_next_level(self) -> int:
        return xp_threshold(self.level)

    def has_achievement(self, achievement_id: str) -> bool:
        return achievement_id in self.unlocked_achievement_ids


class Notification(BaseModel):
    """A structured event pushed to the UI."""

    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    payload: Dict[str, Any] = Field(default_factory=dict)


class QueueStatus(str, Enum):
    """Lifecycle of a queued operation."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


class QueuedOperation(BaseModel):
    """A session event waiting for remote acknowledgment."""

    id: str
    user_id: str
    payload: SessionEvent
    attempts: int = Field(default=0, ge=0)
    status: QueueStatus = QueueStatus.PENDING
    created_at: datetime
    last_error: Optional[str] = None


class RemoteSessionResult(BaseModel):
    """Authoritative outcome returned by the remote createSession call."""

    xp_earned: int = Field(ge=0)
    leveled_up: bool
    new_level: int = Field(ge=1)
    current_xp: int = Field(ge=0)
    streak: int = Field(ge=0)
    unlocked_achievements: Tuple[str, ...] = ()
