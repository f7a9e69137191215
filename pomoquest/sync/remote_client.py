"""HTTP client for the remote createSession endpoint."""

from typing import Awaitable, Callable, Optional

import httpx
import structlog
from pydantic import ValidationError

from pomoquest.core.exceptions import PermanentRemoteError, TransientRemoteError
from pomoquest.models.progression import QueuedOperation, RemoteSessionResult

logger = structlog.get_logger()

TokenProvider = Callable[[], Awaitable[Optional[str]]]

# Retrying these can succeed once the server, network or token recovers
TRANSIENT_STATUS_CODES = {401, 403, 408, 425, 429}


class RemoteProgressClient:
    """Sends queued sessions to ``POST /api/sessions``.

    The operation id travels as the ``Idempotency-Key`` header, so a retry
    after a lost acknowledgment returns the original result instead of
    applying the session twice.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        token_provider: Optional[TokenProvider] = None
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider

    async def create_session(self, operation: QueuedOperation) -> RemoteSessionResult:
        event = operation.payload
        body = {
            "type": event.session_type.value,
            "duration_minutes": event.duration_minutes,
            "is_team_session": event.is_team_session,
            "team_size": event.team_size,
            "team_session_id": event.team_session_id,
            "occurred_at": event.occurred_at.isoformat(),
        }
        headers = {"Idempotency-Key": operation.id}
        if self.token_provider:
            token = await self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.http_client.post(
                f"{self.base_url}/api/sessions",
                json=body,
                headers=headers
            )
        except httpx.TimeoutException as e:
            raise TransientRemoteError(f"Timed out sending session: {e}") from e
        except httpx.TransportError as e:
            raise TransientRemoteError(f"Network error sending session: {e}") from e

        status_code = response.status_code
        if status_code >= 500 or status_code in TRANSIENT_STATUS_CODES:
            raise TransientRemoteError(
                f"Remote store returned {status_code}",
                status_code=status_code
            )
        if status_code >= 400:
            raise PermanentRemoteError(
                f"Remote store rejected session: {status_code} {response.text[:200]}",
                status_code=status_code
            )

        try:
            result = RemoteSessionResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PermanentRemoteError(f"Malformed remote response: {e}", status_code=status_code) from e

        logger.debug(
            "Session acknowledged by remote",
            operation_id=operation.id,
            xp_earned=result.xp_earned,
            new_level=result.new_level
        )
        return result
