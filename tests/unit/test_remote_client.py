"""Unit tests for the remote session client."""

import json
from datetime import datetime

import httpx
import pytest

from pomoquest.core.exceptions import PermanentRemoteError, TransientRemoteError
from pomoquest.models.progression import QueuedOperation, SessionEvent
from pomoquest.sync.remote_client import RemoteProgressClient
from tests.helpers import at, session

RESULT = {
    "xp_earned": 54,
    "leveled_up": False,
    "new_level": 1,
    "current_xp": 54,
    "streak": 1,
    "unlocked_achievements": ["first_session"],
}


def operation(op_id: str = "op-1") -> QueuedOperation:
    return QueuedOperation(
        id=op_id,
        user_id="user-1",
        payload=SessionEvent.parse(session()),
        created_at=datetime(2026, 10, 20, 10, 0),
    )


def client_for(handler, token=None) -> RemoteProgressClient:
    async def token_provider():
        return token

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteProgressClient(http_client, "http://remote.test/", token_provider=token_provider)


class TestCreateSession:

    async def test_sends_body_and_headers(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=RESULT)

        result = await client_for(handler, token="abc").create_session(operation("op-42"))

        assert result.current_xp == 54
        assert result.unlocked_achievements == ("first_session",)
        assert seen["url"] == "http://remote.test/api/sessions"
        assert seen["headers"]["Idempotency-Key"] == "op-42"
        assert seen["headers"]["Authorization"] == "Bearer abc"
        assert seen["body"]["type"] == "focus"
        assert seen["body"]["duration_minutes"] == 25
        assert seen["body"]["occurred_at"] == at().isoformat()

    async def test_no_authorization_without_token(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200, json=RESULT)

        await client_for(handler).create_session(operation())
        assert "Authorization" not in seen["headers"]

    @pytest.mark.parametrize("status_code", [500, 503, 429, 401])
    async def test_retryable_statuses_are_transient(self, status_code):
        client = client_for(lambda request: httpx.Response(status_code))
        with pytest.raises(TransientRemoteError) as exc:
            await client.create_session(operation())
        assert exc.value.status_code == status_code

    async def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        with pytest.raises(TransientRemoteError):
            await client_for(handler).create_session(operation())

    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransientRemoteError):
            await client_for(handler).create_session(operation())

    @pytest.mark.parametrize("status_code", [400, 404, 422])
    async def test_rejections_are_permanent(self, status_code):
        client = client_for(lambda request: httpx.Response(status_code, json={"detail": "bad"}))
        with pytest.raises(PermanentRemoteError):
            await client.create_session(operation())

    async def test_malformed_body_is_permanent(self):
        client = client_for(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(PermanentRemoteError):
            await client.create_session(operation())
