"""Durable FIFO queue of completed sessions waiting for the remote store."""

import asyncio
from datetime import datetime, timezone
from typing import Any, List, NamedTuple, Optional, Tuple
from uuid import uuid4

import structlog
from pydantic import ValidationError

from pomoquest.core.config import settings
from pomoquest.core.exceptions import PermanentRemoteError, TransientRemoteError
from pomoquest.models.progression import (
    Notification,
    QueuedOperation,
    QueueStatus,
    RemoteSessionResult,
    SessionEvent,
)
from pomoquest.services.progression_service import ProgressionService
from pomoquest.sync.local_store import LocalStore
from pomoquest.sync.remote_client import RemoteProgressClient

logger = structlog.get_logger()


class FlushResult(NamedTuple):
    acknowledged: int
    dropped: int
    remaining: int


class OfflineSyncQueue:
    """Client-side outbox for session completions.

    Sessions are applied to local state as soon as they are enqueued and
    sent to the remote store later, oldest first. Only one flush runs at a
    time. The queue is persisted after every change, so a crash loses
    nothing that was acknowledged to the caller.
    """

    def __init__(
        self,
        service: ProgressionService,
        store: LocalStore,
        remote: RemoteProgressClient
    ):
        self.service = service
        self.store = store
        self.remote = remote
        self._operations: List[QueuedOperation] = []
        self._lock = asyncio.Lock()
        self._flushing = False
        self._periodic_task: Optional[asyncio.Task] = None

    @property
    def user_id(self) -> str:
        return self.service.user_id

    @property
    def queue_key(self) -> str:
        return f"sync_queue:{self.user_id}"

    @property
    def dead_letter_key(self) -> str:
        return f"sync_dead_letter:{self.user_id}"

    @property
    def operations(self) -> Tuple[QueuedOperation, ...]:
        return tuple(self._operations)

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    async def load(self):
        """Restore the queue.

        Operations left in flight by a crash go back to pending. Stored items
        that no longer validate are moved to the dead letter list so the rest
        of the queue stays usable.
        """
        async with self._lock:
            raw = await self.store.get(self.queue_key, [])
            operations: List[QueuedOperation] = []
            malformed = []
            for item in raw:
                try:
                    operations.append(QueuedOperation.model_validate(item))
                except ValidationError as e:
                    malformed.append((item, e))

            recovered = 0
            for i, operation in enumerate(operations):
                if operation.status == QueueStatus.IN_FLIGHT:
                    operations[i] = operation.model_copy(update={"status": QueueStatus.PENDING})
                    recovered += 1
            self._operations = operations

            if malformed:
                await self._dead_letter_malformed(malformed)
            if recovered or malformed:
                await self._save_queue()

        logger.info(
            "Sync queue loaded",
            user_id=self.user_id,
            pending=len(self._operations),
            recovered=recovered,
            dropped=len(malformed)
        )

    async def enqueue(self, event: Any) -> List[Notification]:
        """Apply a completed session locally and queue it for the remote store.

        Invalid events raise ``SessionValidationError`` and change nothing.
        """
        event = SessionEvent.parse(event)
        operation = QueuedOperation(
            id=uuid4().hex,
            user_id=self.user_id,
            payload=event,
            created_at=datetime.now(timezone.utc),
        )

        async with self._lock:
            notifications = self.service.complete_session(event)
            self._operations.append(operation)
            await self._save_queue()
            await self.service.save()

        logger.debug("Session queued", user_id=self.user_id, operation_id=operation.id)
        return notifications

    async def flush(self) -> FlushResult:
        """Send queued sessions in order until the queue is empty or the remote is unreachable."""
        if self._flushing:
            logger.debug("Flush already running", user_id=self.user_id)
            return FlushResult(0, 0, len(self._operations))

        self._flushing = True
        acknowledged = dropped = 0
        last_result: Optional[RemoteSessionResult] = None

        try:
            while True:
                async with self._lock:
                    if not self._operations:
                        break
                    head = self._operations[0]
                    operation = head.model_copy(update={
                        "status": QueueStatus.IN_FLIGHT,
                        "attempts": head.attempts + 1,
                    })
                    self._operations[0] = operation
                    await self._save_queue()

                try:
                    result = await self.remote.create_session(operation)
                except TransientRemoteError as e:
                    logger.info(
                        "Remote unavailable, will retry",
                        user_id=self.user_id,
                        operation_id=operation.id,
                        attempts=operation.attempts,
                        error=str(e)
                    )
                    await self._release(operation, str(e))
                    break
                except PermanentRemoteError as e:
                    await self._dead_letter(operation, str(e))
                    dropped += 1
                    continue
                except Exception as e:
                    logger.error(
                        "Unexpected error sending session",
                        user_id=self.user_id,
                        operation_id=operation.id,
                        error=str(e),
                        exc_info=True
                    )
                    await self._release(operation, str(e))
                    break

                async with self._lock:
                    self._remove(operation.id)
                    await self._save_queue()
                acknowledged += 1
                last_result = result

            # Server values only describe local state once nothing is left to send
            async with self._lock:
                if last_result is not None and not self._operations:
                    await self.service.reconcile(last_result)
        finally:
            for i, operation in enumerate(self._operations):
                if operation.status == QueueStatus.IN_FLIGHT:
                    self._operations[i] = operation.model_copy(update={"status": QueueStatus.PENDING})
            self._flushing = False

        if acknowledged or dropped:
            logger.info(
                "Sync queue flushed",
                user_id=self.user_id,
                acknowledged=acknowledged,
                dropped=dropped,
                remaining=len(self._operations)
            )
        return FlushResult(acknowledged, dropped, len(self._operations))

    async def dead_letters(self) -> List[QueuedOperation]:
        """Rejected operations. Malformed records stay in storage but are not returned."""
        operations = []
        for item in await self.store.get(self.dead_letter_key, []):
            try:
                operations.append(QueuedOperation.model_validate(item))
            except ValidationError:
                continue
        return operations

    async def on_connectivity_restored(self) -> FlushResult:
        return await self.flush()

    async def on_app_foreground(self) -> FlushResult:
        return await self.flush()

    def start_periodic_flush(self, interval: Optional[float] = None):
        """Flush every ``interval`` seconds until ``stop()`` is called."""
        if self._periodic_task and not self._periodic_task.done():
            return
        if interval is None:
            interval = settings.SYNC_INTERVAL_SECONDS
        self._periodic_task = asyncio.create_task(self._run_periodic(interval))

    async def stop(self):
        if self._periodic_task is None:
            return
        self._periodic_task.cancel()
        try:
            await self._periodic_task
        except asyncio.CancelledError:
            pass
        self._periodic_task = None

    async def _run_periodic(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            try:
                await self.flush()
            except Exception as e:
                logger.error("Periodic flush failed", user_id=self.user_id, error=str(e))

    async def _release(self, operation: QueuedOperation, error: str):
        async with self._lock:
            for i, queued in enumerate(self._operations):
                if queued.id == operation.id:
                    self._operations[i] = queued.model_copy(update={
                        "status": QueueStatus.PENDING,
                        "last_error": error,
                    })
            await self._save_queue()

    async def _dead_letter(self, operation: QueuedOperation, error: str):
        logger.warning(
            "Remote rejected session, moved to dead letter",
            user_id=self.user_id,
            operation_id=operation.id,
            attempts=operation.attempts,
            error=error
        )
        failed = operation.model_copy(update={"status": QueueStatus.FAILED, "last_error": error})
        async with self._lock:
            dead = await self.store.get(self.dead_letter_key, [])
            dead.append(failed.model_dump(mode="json"))
            await self.store.set(self.dead_letter_key, dead)
            self._remove(operation.id)
            await self._save_queue()

    async def _dead_letter_malformed(self, items):
        dead = await self.store.get(self.dead_letter_key, [])
        for item, error in items:
            operation_id = item.get("id") if isinstance(item, dict) else None
            logger.warning(
                "Dropping malformed queued operation",
                user_id=self.user_id,
                operation_id=operation_id,
                error=str(error)
            )
            record = dict(item) if isinstance(item, dict) else {"value": item}
            record.update(status=QueueStatus.FAILED.value, last_error=str(error))
            dead.append(record)
        await self.store.set(self.dead_letter_key, dead)

    def _remove(self, operation_id: str):
        self._operations = [op for op in self._operations if op.id != operation_id]

    async def _save_queue(self):
        await self.store.set(self.queue_key, [op.model_dump(mode="json") for op in self._operations])
