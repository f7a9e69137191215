"""Exception hierarchy for the progression core."""

from typing import List, Optional


class ProgressionError(Exception):
    """Base class for all progression errors."""


class SessionValidationError(ProgressionError):
    """A session event is malformed and must not touch any state."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class SettingsValidationError(ProgressionError):
    """Timer settings failed range or key validation."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class UnknownAchievementError(ProgressionError):
    """Achievement id is not in the rule table."""


class UnknownAbilityError(ProgressionError):
    """Ability id is unknown or not granted by the current character."""


class UnknownGameError(ProgressionError):
    """Mini-game id is not in the catalogue."""


class RemoteSyncError(ProgressionError):
    """Base class for failures talking to the remote store."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientRemoteError(RemoteSyncError):
    """Network error, timeout, 5xx or throttling. Retry later."""


class PermanentRemoteError(RemoteSyncError):
    """The remote rejected the operation; retrying cannot succeed."""
