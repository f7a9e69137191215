"""Server-held progression state and idempotency records."""

import asyncio
import weakref
from typing import Optional

from pomoquest.core.config import TimerSettings
from pomoquest.gamification.progression_engine import new_progression_state
from pomoquest.models.progression import ProgressionState, RemoteSessionResult
from pomoquest.sync.local_store import LocalStore


class ProgressStore:
    """Per-user state snapshots on top of the cache store.

    Writers for the same user are serialized with ``lock(user_id)``; callers
    hold it across read, apply and save.
    """

    def __init__(self, store: LocalStore, idempotency_ttl: Optional[int] = None):
        self.store = store
        self.idempotency_ttl = idempotency_ttl
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock(self, user_id: str) -> asyncio.Lock:
        # Entries disappear once no request holds or waits on the lock
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def get(self, user_id: str) -> ProgressionState:
        data = await self.store.get(f"server_progression:{user_id}")
        if data is None:
            return new_progression_state(user_id)
        return ProgressionState.model_validate(data)

    async def save(self, state: ProgressionState):
        await self.store.set(f"server_progression:{state.user_id}", state.model_dump(mode="json"))

    async def get_idempotent_result(self, user_id: str, key: str) -> Optional[RemoteSessionResult]:
        data = await self.store.get(f"idempotency:{user_id}:{key}")
        if data is None:
            return None
        return RemoteSessionResult.model_validate(data)

    async def save_idempotent_result(self, user_id: str, key: str, result: RemoteSessionResult):
        await self.store.set(
            f"idempotency:{user_id}:{key}",
            result.model_dump(mode="json"),
            ttl=self.idempotency_ttl
        )

    async def get_timer_settings(self, user_id: str) -> TimerSettings:
        data = await self.store.get(f"timer_settings:{user_id}")
        return TimerSettings() if data is None else TimerSettings.model_validate(data)

    async def save_timer_settings(self, user_id: str, timer_settings: TimerSettings):
        await self.store.set(f"timer_settings:{user_id}", timer_settings.model_dump())
