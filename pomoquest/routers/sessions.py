"""Remote persistence endpoint for completed sessions."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
import structlog

from pomoquest.core.dependencies import get_current_user, get_progress_store
from pomoquest.core.exceptions import SessionValidationError
from pomoquest.gamification.progression_engine import engine
from pomoquest.models.progression import RemoteSessionResult, SessionEvent
from pomoquest.schemas.progression import SessionCreate
from pomoquest.services.progress_store import ProgressStore

logger = structlog.get_logger()
router = APIRouter()


@router.post("", response_model=RemoteSessionResult)
async def create_session(
    session: SessionCreate,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    """Apply a completed session to the server-held progression.

    Retries carrying the same ``Idempotency-Key`` get the stored result back
    and do not apply the session again.
    """
    user_id = current_user["user_id"]

    try:
        event = SessionEvent.parse({
            "session_type": session.type,
            "duration_minutes": session.duration_minutes,
            "is_team_session": session.is_team_session,
            "team_size": session.team_size,
            "team_session_id": session.team_session_id,
            "occurred_at": session.occurred_at or datetime.now(timezone.utc),
        })
    except SessionValidationError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "field": e.field})

    async with progress_store.lock(user_id):
        if idempotency_key:
            cached = await progress_store.get_idempotent_result(user_id, idempotency_key)
            if cached is not None:
                logger.info("Replayed session", user_id=user_id, idempotency_key=idempotency_key)
                return cached

        state = await progress_store.get(user_id)
        xp_earned = engine.session_xp(state, event)
        new_state, notifications = engine.on_session_completed(state, event)
        await progress_store.save(new_state)

        newly_unlocked = tuple(
            a for a in new_state.unlocked_achievement_ids if a not in state.unlocked_achievement_ids
        )
        result = RemoteSessionResult(
            xp_earned=xp_earned,
            leveled_up=new_state.level > state.level,
            new_level=new_state.level,
            current_xp=new_state.xp,
            streak=new_state.streak,
            unlocked_achievements=newly_unlocked,
        )
        if idempotency_key:
            await progress_store.save_idempotent_result(user_id, idempotency_key, result)

    logger.info(
        "Session recorded",
        user_id=user_id,
        session_type=event.session_type.value,
        xp_earned=xp_earned,
        level=new_state.level,
        notifications=len(notifications)
    )
    return result
