"""Data models for the progression service."""

from pomoquest.models.progression import (
    SessionType,
    CharacterType,
    NotificationKind,
    SessionEvent,
    ProgressionState,
    Notification,
    QueueStatus,
    QueuedOperation,
    RemoteSessionResult,
)

__all__ = [
    "SessionType",
    "CharacterType",
    "NotificationKind",
    "SessionEvent",
    "ProgressionState",
    "Notification",
    "QueueStatus",
    "QueuedOperation",
    "RemoteSessionResult",
]
