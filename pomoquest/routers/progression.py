"""Progression read endpoints and mini-game / ability actions."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
import structlog

from pomoquest.core.dependencies import get_current_user, get_progress_store
from pomoquest.core.exceptions import UnknownAbilityError
from pomoquest.gamification.achievements import ACHIEVEMENTS
from pomoquest.gamification.evolution import character_abilities, resolve_character
from pomoquest.gamification.games import GAMES
from pomoquest.gamification.progression_engine import engine
from pomoquest.models.progression import ProgressionState
from pomoquest.schemas.progression import (
    AbilityResponse,
    AbilityToggleRequest,
    AchievementResponse,
    CharacterResponse,
    GamePlayRequest,
    GamePlayResponse,
    ProgressionResponse,
)
from pomoquest.services.progress_store import ProgressStore

logger = structlog.get_logger()
router = APIRouter()


def _character_response(state: ProgressionState) -> CharacterResponse:
    character = resolve_character(state.character_evolution_path, state.character_level)
    active = set(state.active_ability_ids)
    return CharacterResponse(
        id=character.id,
        name=character.name,
        description=character.description,
        level=state.character_level,
        evolution_path=state.character_evolution_path,
        exp=state.character_exp,
        next_evolution_exp=character.next_evolution_exp,
        abilities=[
            AbilityResponse(
                id=ability.id,
                name=ability.name,
                description=ability.description,
                type=ability.type.value,
                value=ability.value,
                active=ability.id in active,
            )
            for ability in character_abilities(state.character_evolution_path, state.character_level)
        ],
    )


@router.get("/me", response_model=ProgressionResponse)
async def get_my_progression(
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    """Get the caller's level, XP, streak and counters."""
    state = await progress_store.get(current_user["user_id"])
    return ProgressionResponse(xp_to_next_level=state.xp_to_next_level, **state.model_dump(
        include=set(ProgressionResponse.model_fields) - {"xp_to_next_level"}
    ))


@router.get("/achievements", response_model=List[AchievementResponse])
async def get_achievements(
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    """List achievements with unlock status. Locked secret achievements are hidden."""
    state = await progress_store.get(current_user["user_id"])
    unlocked = set(state.unlocked_achievement_ids)
    return [
        AchievementResponse(
            id=a.id,
            name=a.name,
            description=a.description,
            category=a.category.value,
            required_value=a.required_value,
            reward=a.reward,
            secret=a.secret,
            unlocked=a.id in unlocked,
        )
        for a in ACHIEVEMENTS
        if not a.secret or a.id in unlocked
    ]


@router.get("/character", response_model=CharacterResponse)
async def get_character(
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    state = await progress_store.get(current_user["user_id"])
    return _character_response(state)


@router.post("/games/{game_id}/play", response_model=GamePlayResponse)
async def play_game(
    game_id: str,
    play: GamePlayRequest,
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    """Record a mini-game play and its score."""
    user_id = current_user["user_id"]

    async with progress_store.lock(user_id):
        state = await progress_store.get(user_id)
        if game_id not in GAMES:
            raise HTTPException(status_code=404, detail=f"Unknown game: {game_id}")
        if game_id not in state.unlocked_game_ids:
            raise HTTPException(status_code=403, detail=f"Game {game_id} is locked")

        new_state, notifications = engine.record_game_play(state, game_id, play.score)
        await progress_store.save(new_state)

    logger.info("Game played", user_id=user_id, game_id=game_id, score=play.score)
    return GamePlayResponse(
        game_id=game_id,
        high_score=new_state.game_high_scores[game_id],
        play_count=new_state.game_play_count,
        notifications=notifications,
    )


@router.put("/abilities/{ability_id}", response_model=CharacterResponse)
async def toggle_ability(
    ability_id: str,
    toggle: AbilityToggleRequest,
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    """Activate or deactivate one of the current character's abilities."""
    user_id = current_user["user_id"]

    async with progress_store.lock(user_id):
        state = await progress_store.get(user_id)
        try:
            new_state = engine.toggle_ability(state, ability_id, toggle.active)
        except UnknownAbilityError as e:
            raise HTTPException(status_code=404, detail=str(e))
        await progress_store.save(new_state)

    return _character_response(new_state)
