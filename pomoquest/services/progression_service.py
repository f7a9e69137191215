"""Per-user progression service for the client application."""

from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from pomoquest.core.config import TimerSettings, merge_timer_settings
from pomoquest.gamification.progression_engine import ProgressionEngine, engine as default_engine, new_progression_state
from pomoquest.models.progression import Notification, ProgressionState, RemoteSessionResult
from pomoquest.notifications.notification_engine import NotificationEngine
from pomoquest.sync.local_store import LocalStore

logger = structlog.get_logger()

DEMO_USER_ID = "demo-user"


class ProgressionService:
    """Owns the current user's progression state.

    One instance is created per application session and handed to whatever
    needs it. It is the only writer of the state: every change goes through
    the engine, is published to the notification sink and is then persisted
    to the local store.
    """

    def __init__(
        self,
        user_id: str,
        store: LocalStore,
        notifications: Optional[NotificationEngine] = None,
        engine: Optional[ProgressionEngine] = None
    ):
        if not user_id:
            raise ValueError("user_id is required")

        self.user_id = user_id
        self.store = store
        self.notifications = notifications or NotificationEngine()
        self.engine = engine or default_engine
        self._state = new_progression_state(user_id)
        self._timer_settings = TimerSettings()

    @classmethod
    def demo(cls, store: Optional[LocalStore] = None, **kwargs) -> "ProgressionService":
        """Service bound to the demo account, for previews and tests."""
        return cls(DEMO_USER_ID, store or LocalStore(), **kwargs)

    @property
    def state(self) -> ProgressionState:
        return self._state

    @property
    def timer_settings(self) -> TimerSettings:
        return self._timer_settings

    @property
    def state_key(self) -> str:
        return f"progression_state:{self.user_id}"

    @property
    def settings_key(self) -> str:
        return f"timer_settings:{self.user_id}"

    async def load(self) -> ProgressionState:
        """Restore the last saved snapshot, or start fresh."""
        data = await self.store.get(self.state_key)
        if data is not None:
            try:
                self._state = ProgressionState.model_validate(data)
            except ValidationError as e:
                logger.error("Stored progression state is invalid", user_id=self.user_id, error=str(e))
                await self.store.set(f"{self.state_key}:corrupt", data)
                self._state = new_progression_state(self.user_id)

        settings_data = await self.store.get(self.settings_key)
        if settings_data is not None:
            self._timer_settings = TimerSettings.model_validate(settings_data)

        logger.info("Progression loaded", user_id=self.user_id, level=self._state.level)
        return self._state

    async def save(self):
        await self.store.set(self.state_key, self._state.model_dump(mode="json"))

    def complete_session(self, event: Any) -> List[Notification]:
        """Apply a finished session to local state right away.

        Synchronous so the UI sees the new state immediately; persistence is
        left to the caller (the offline queue saves it with the operation).
        """
        new_state, notifications = self.engine.on_session_completed(self._state, event)
        self._commit(new_state, notifications)
        return notifications

    async def reconcile(self, result: RemoteSessionResult) -> List[Notification]:
        """Take the server's authoritative values for level, XP and streak."""
        new_state, notifications = self.engine.apply_remote_result(self._state, result)
        self._commit(new_state, notifications)
        await self.save()
        return notifications

    async def record_game_play(self, game_id: str, score: int = 0) -> List[Notification]:
        new_state, notifications = self.engine.record_game_play(self._state, game_id, score)
        self._commit(new_state, notifications)
        await self.save()
        return notifications

    async def add_xp(self, amount: int) -> List[Notification]:
        new_state, notifications = self.engine.add_xp(self._state, amount)
        self._commit(new_state, notifications)
        await self.save()
        return notifications

    async def reduce_xp(self, amount: int) -> ProgressionState:
        self._commit(self.engine.reduce_xp(self._state, amount), [])
        await self.save()
        return self._state

    async def unlock_achievement(self, achievement_id: str) -> List[Notification]:
        new_state, notifications = self.engine.unlock_achievement(self._state, achievement_id)
        self._commit(new_state, notifications)
        await self.save()
        return notifications

    async def set_ability_active(self, ability_id: str, active: bool) -> ProgressionState:
        self._commit(self.engine.toggle_ability(self._state, ability_id, active), [])
        await self.save()
        return self._state

    async def reset_progress(self) -> ProgressionState:
        self._commit(self.engine.reset_progress(self._state), [])
        await self.save()
        return self._state

    async def update_timer_settings(self, overrides: Dict[str, Any]) -> TimerSettings:
        self._timer_settings = merge_timer_settings(self._timer_settings, overrides)
        await self.store.set(self.settings_key, self._timer_settings.model_dump())
        return self._timer_settings

    def _commit(self, new_state: ProgressionState, notifications: List[Notification]):
        self._state = new_state
        if notifications:
            self.notifications.publish(self.user_id, notifications)
