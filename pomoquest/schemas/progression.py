"""Request and response bodies for the progression API."""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from pomoquest.models.progression import CharacterType, Notification


class SessionCreate(BaseModel):
    """Body of ``POST /api/sessions``. Field rules are enforced by ``SessionEvent``."""
    type: str
    duration_minutes: int
    is_team_session: bool = False
    team_size: int = 1
    team_session_id: Optional[str] = None
    occurred_at: Optional[datetime] = None


class GamePlayRequest(BaseModel):
    score: int = Field(default=0, ge=0)


class AbilityToggleRequest(BaseModel):
    active: bool


class ProgressionResponse(BaseModel):
    user_id: str
    level: int
    xp: int
    xp_to_next_level: int
    total_xp_earned: int
    streak: int
    longest_streak: int
    total_sessions: int
    focus_sessions: int
    total_minutes: int
    total_active_days: int
    team_sessions_completed: int
    team_session_minutes: int
    unlocked_achievement_ids: Tuple[str, ...]
    unlocked_game_ids: Tuple[str, ...]
    game_high_scores: Dict[str, int]


class AchievementResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    required_value: int
    reward: int
    secret: bool
    unlocked: bool


class AbilityResponse(BaseModel):
    id: str
    name: str
    description: str
    type: str
    value: int
    active: bool


class CharacterResponse(BaseModel):
    id: str
    name: str
    description: str
    level: int
    evolution_path: Tuple[CharacterType, ...]
    exp: int
    next_evolution_exp: Optional[int]
    abilities: List[AbilityResponse]


class GamePlayResponse(BaseModel):
    game_id: str
    high_score: int
    play_count: int
    notifications: List[Notification]
