"""Timer settings endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
import structlog

from pomoquest.core.config import TimerSettings, merge_timer_settings
from pomoquest.core.dependencies import get_current_user, get_progress_store
from pomoquest.core.exceptions import SettingsValidationError
from pomoquest.services.progress_store import ProgressStore

logger = structlog.get_logger()
router = APIRouter()


@router.get("/timer", response_model=TimerSettings)
async def get_timer_settings(
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    return await progress_store.get_timer_settings(current_user["user_id"])


@router.put("/timer", response_model=TimerSettings)
async def update_timer_settings(
    overrides: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user),
    progress_store: ProgressStore = Depends(get_progress_store)
):
    """Merge a partial update into the caller's timer settings."""
    user_id = current_user["user_id"]

    async with progress_store.lock(user_id):
        current = await progress_store.get_timer_settings(user_id)
        try:
            updated = merge_timer_settings(current, overrides)
        except SettingsValidationError as e:
            raise HTTPException(status_code=422, detail={"message": str(e), "fields": e.fields})
        await progress_store.save_timer_settings(user_id, updated)

    logger.info("Timer settings updated", user_id=user_id, fields=sorted(overrides))
    return updated
