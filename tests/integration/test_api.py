"""API tests for the progression service."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from pomoquest.core.config import settings
from pomoquest.core.dependencies import get_local_store
from pomoquest.main import app
from pomoquest.sync.local_store import LocalStore
from tests.helpers import at


def auth(user_id: str = "user-1") -> dict:
    token = jwt.encode({"sub": user_id}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def session_body(minutes: int = 25, **kwargs) -> dict:
    return {"type": "focus", "duration_minutes": minutes, "occurred_at": at().isoformat(), **kwargs}


@pytest.fixture
def client():
    store = LocalStore(namespace=f"api-{uuid4().hex}")
    app.dependency_overrides[get_local_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "operational"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["checks"]["cache"] == "healthy"


class TestAuth:

    def test_missing_token(self, client):
        response = client.post("/api/sessions", json=session_body())
        assert response.status_code in (401, 403)

    def test_invalid_token(self, client):
        response = client.post(
            "/api/sessions",
            json=session_body(),
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401


class TestCreateSession:

    def test_applies_session(self, client):
        response = client.post("/api/sessions", json=session_body(), headers=auth())

        assert response.status_code == 200
        body = response.json()
        # 45 base * 1.2 focus * 1.05 starter ability
        assert body["xp_earned"] == 57
        assert body["streak"] == 1
        assert "first_session" in body["unlocked_achievements"]

    def test_same_idempotency_key_is_applied_once(self, client):
        headers = {**auth(), "Idempotency-Key": "op-1"}

        first = client.post("/api/sessions", json=session_body(), headers=headers)
        second = client.post("/api/sessions", json=session_body(), headers=headers)

        assert first.json() == second.json()
        me = client.get("/api/progression/me", headers=auth()).json()
        assert me["total_sessions"] == 1

    def test_idempotency_keys_are_per_user(self, client):
        client.post("/api/sessions", json=session_body(), headers={**auth("a"), "Idempotency-Key": "k"})
        client.post("/api/sessions", json=session_body(), headers={**auth("b"), "Idempotency-Key": "k"})

        assert client.get("/api/progression/me", headers=auth("b")).json()["total_sessions"] == 1

    def test_invalid_session_is_rejected(self, client):
        response = client.post("/api/sessions", json=session_body(minutes=0), headers=auth())

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "duration_minutes"
        assert client.get("/api/progression/me", headers=auth()).json()["total_sessions"] == 0

    def test_team_size_without_team_flag_is_accepted(self, client):
        response = client.post("/api/sessions", json=session_body(team_size=3), headers=auth())

        assert response.status_code == 200
        assert response.json()["xp_earned"] == 57
        assert client.get("/api/progression/me", headers=auth()).json()["team_sessions_completed"] == 0


class TestProgression:

    def test_me_for_new_user(self, client):
        body = client.get("/api/progression/me", headers=auth()).json()
        assert body["level"] == 1
        assert body["xp_to_next_level"] == 100

    def test_secret_achievements_hidden_until_unlocked(self, client):
        before = {a["id"] for a in client.get("/api/progression/achievements", headers=auth()).json()}
        assert "night_owl" not in before

        client.post("/api/sessions", json=session_body(occurred_at=at(0, hour=23).isoformat()), headers=auth())

        after = {a["id"]: a for a in client.get("/api/progression/achievements", headers=auth()).json()}
        assert after["night_owl"]["unlocked"] is True

    def test_character(self, client):
        body = client.get("/api/progression/character", headers=auth()).json()
        assert body["name"] == "Pomotama"
        assert body["next_evolution_exp"] == 500
        assert {a["id"] for a in body["abilities"] if a["active"]} == {"basic_timer", "basic_xp"}

    def test_play_game(self, client):
        response = client.post("/api/progression/games/tap_target/play", json={"score": 150}, headers=auth())
        assert response.status_code == 200
        assert response.json()["high_score"] == 150

    def test_locked_and_unknown_games(self, client):
        locked = client.post("/api/progression/games/memory_match/play", json={"score": 1}, headers=auth())
        unknown = client.post("/api/progression/games/chess/play", json={"score": 1}, headers=auth())
        assert locked.status_code == 403
        assert unknown.status_code == 404

    def test_toggle_ability(self, client):
        response = client.put("/api/progression/abilities/basic_xp", json={"active": False}, headers=auth())
        assert response.status_code == 200
        active = {a["id"] for a in response.json()["abilities"] if a["active"]}
        assert active == {"basic_timer"}

    def test_toggle_ability_not_granted(self, client):
        response = client.put("/api/progression/abilities/kitsune_wisdom", json={"active": True}, headers=auth())
        assert response.status_code == 404


class TestTimerSettings:

    def test_defaults_and_update(self, client):
        assert client.get("/api/settings/timer", headers=auth()).json()["focus_duration"] == 25

        response = client.put("/api/settings/timer", json={"focus_duration": 50}, headers=auth())

        assert response.status_code == 200
        assert response.json()["focus_duration"] == 50
        assert client.get("/api/settings/timer", headers=auth()).json()["focus_duration"] == 50

    def test_out_of_range_rejected(self, client):
        response = client.put("/api/settings/timer", json={"focus_duration": 121}, headers=auth())
        assert response.status_code == 422
        assert response.json()["detail"]["fields"] == ["focus_duration"]
