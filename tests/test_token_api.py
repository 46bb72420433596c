"""
API endpoint tests for token management
"""

import inspect

import pytest
from fastapi.testclient import TestClient

from tokenvault.main import app
from tokenvault.api.token_router import (
    issue_token,
    refresh_token,
    update_token,
    verify_token,
)
from tokenvault.api.deps import get_session_keys, get_token_manager

PRINCIPAL = 7
HEADERS = {"X-Principal-Id": str(PRINCIPAL)}


@pytest.fixture
def client():
    """Create test client"""
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_state():
    """Clear tokens and sessions before each test"""
    get_token_manager().store.clear()
    get_session_keys().clear()
    yield
    get_token_manager().store.clear()
    get_session_keys().clear()


@pytest.fixture
def session(client):
    response = client.post("/sessions", json={}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()["session_id"]


def issue(client, action_id, user_id=5, **extra):
    return client.post(
        "/tokens",
        json={"action_id": action_id, "user_id": user_id, **extra},
        headers=HEADERS,
    )


class TestSessionAPI:
    """Test session endpoints"""

    def test_open_session(self, client):
        response = client.post("/sessions", json={}, headers=HEADERS)

        assert response.status_code == 201
        data = response.json()
        assert data["principal"] == PRINCIPAL
        assert data["session_id"]

    def test_resume_session(self, client):
        response = client.post("/sessions", json={"session_id": "abc-123"}, headers=HEADERS)

        assert response.json()["session_id"] == "abc-123"

    def test_close_session(self, client, session):
        assert client.delete("/sessions", headers=HEADERS).status_code == 204
        assert client.delete("/sessions", headers=HEADERS).status_code == 404

    def test_principal_header_required(self, client):
        assert client.post("/sessions", json={}).status_code == 422


class TestTokenIssuanceAPI:
    """Test token issuance API endpoints"""

    def test_issue_non_sensitive_token(self, client):
        response = issue(client, "account_search")

        assert response.status_code == 201
        data = response.json()
        assert data["id"] >= 1
        assert data["user_id"] == 5
        assert data["action_id"] == "account_search"
        assert len(data["token_value"]) == 64
        assert data["has_vault"] is False
        assert data["created_by"] == PRINCIPAL

    def test_issue_sensitive_token(self, client, session):
        response = issue(client, "account_view_pass", secret="masterHashABC")

        assert response.status_code == 201
        data = response.json()
        assert data["has_vault"] is True
        assert "vault" not in data
        assert "verification_hash" not in data

    def test_issue_sensitive_without_secret(self, client, session):
        response = issue(client, "account_view_pass")

        assert response.status_code == 400
        assert "secret" in response.json()["detail"]

    def test_issue_sensitive_without_session(self, client):
        response = issue(client, "account_view_pass", secret="masterHashABC")

        assert response.status_code == 400
        assert "No active session" in response.json()["detail"]

    def test_issue_duplicate(self, client):
        issue(client, "account_search")

        assert issue(client, "account_search").status_code == 409

    def test_issue_reuse_and_rotate(self, client):
        first = issue(client, "account_search").json()
        reused = issue(client, "account_view").json()
        rotated = issue(client, "tag_view", mode="rotate").json()

        assert reused["token_value"] == first["token_value"]
        assert rotated["token_value"] != first["token_value"]

    def test_issue_unknown_action(self, client):
        assert issue(client, "launch_rockets").status_code == 422

    def test_issue_invalid_user(self, client):
        assert issue(client, "account_search", user_id=0).status_code == 422


class TestTokenQueryAPI:
    """Test listing, lookup and verification"""

    def test_list_actions(self, client):
        response = client.get("/tokens/actions")

        assert response.status_code == 200
        sensitive = {a["action_id"] for a in response.json() if a["sensitive"]}
        assert sensitive == {"account_view_pass", "account_create"}

    def test_list_tokens(self, client):
        issue(client, "account_search", user_id=5)
        issue(client, "account_search", user_id=6)

        response = client.get("/tokens")
        assert response.json()["total"] == 2

        filtered = client.get("/tokens", params={"user_id": 6}).json()
        assert filtered["total"] == 1
        assert filtered["tokens"][0]["user_id"] == 6

    def test_get_token(self, client):
        created = issue(client, "account_search").json()

        response = client.get(f"/tokens/{created['id']}")

        assert response.status_code == 200
        assert response.json()["token_value"] == created["token_value"]

    def test_get_missing_token(self, client):
        assert client.get("/tokens/999").status_code == 404

    def test_lookup(self, client):
        created = issue(client, "account_search").json()

        found = client.post(
            "/tokens/lookup",
            json={"action_id": "account_search", "token_value": created["token_value"]},
        )
        wrong_action = client.post(
            "/tokens/lookup",
            json={"action_id": "account_view", "token_value": created["token_value"]},
        )

        assert found.status_code == 200
        assert found.json()["id"] == created["id"]
        assert wrong_action.status_code == 404

    def test_verify(self, client, session):
        created = issue(client, "account_view_pass", secret="masterHashABC").json()
        body = {"action_id": "account_view_pass", "token_value": created["token_value"]}

        valid = client.post("/tokens/verify", json={**body, "secret": "masterHashABC"})
        invalid = client.post("/tokens/verify", json={**body, "secret": "wrong"})

        assert valid.status_code == 200
        assert valid.json() == {"valid": True, "token_id": created["id"], "reason": None}
        assert invalid.status_code == 200
        assert invalid.json()["valid"] is False

    def test_verify_unknown_token(self, client):
        response = client.post(
            "/tokens/verify",
            json={"action_id": "account_search", "token_value": "f" * 64},
        )

        assert response.status_code == 404


class TestTokenChangeAPI:
    """Test update and refresh"""

    def test_refresh(self, client, session):
        created = issue(client, "account_view_pass", secret="masterHashABC").json()

        response = client.post(
            f"/tokens/{created['id']}/refresh",
            json={"secret": "masterHashABC"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        refreshed = response.json()
        assert refreshed["id"] == created["id"]
        assert refreshed["token_value"] != created["token_value"]

        stale = client.post(
            "/tokens/lookup",
            json={"action_id": "account_view_pass", "token_value": created["token_value"]},
        )
        assert stale.status_code == 404

    def test_refresh_sensitive_without_secret(self, client, session):
        created = issue(client, "account_view_pass", secret="masterHashABC").json()

        response = client.post(f"/tokens/{created['id']}/refresh", json={}, headers=HEADERS)

        assert response.status_code == 400

    def test_refresh_missing_token(self, client):
        response = client.post("/tokens/999/refresh", json={}, headers=HEADERS)

        assert response.status_code == 404

    def test_update_action(self, client):
        created = issue(client, "account_search").json()

        response = client.put(
            f"/tokens/{created['id']}",
            json={"action_id": "account_view"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["action_id"] == "account_view"
        assert response.json()["token_value"] == created["token_value"]

    def test_update_clash(self, client):
        issue(client, "account_search")
        other = issue(client, "account_view").json()

        response = client.put(
            f"/tokens/{other['id']}",
            json={"action_id": "account_search"},
            headers=HEADERS,
        )

        assert response.status_code == 409


class TestTokenRevocationAPI:
    """Test token revocation API endpoints"""

    def test_revoke_token(self, client):
        created = issue(client, "account_search").json()

        assert client.delete(f"/tokens/{created['id']}").status_code == 204
        assert client.get(f"/tokens/{created['id']}").status_code == 404

    def test_revoke_missing_token(self, client):
        assert client.delete("/tokens/999").status_code == 404

    def test_batch_delete(self, client):
        first = issue(client, "account_search", user_id=5).json()
        second = issue(client, "account_search", user_id=6).json()

        response = client.post("/tokens/batch-delete", json={"ids": [first["id"], second["id"]]})

        assert response.status_code == 200
        assert response.json() == {"deleted": 2}

    def test_batch_delete_partial(self, client):
        first = issue(client, "account_search", user_id=5).json()
        second = issue(client, "account_search", user_id=6).json()

        response = client.post(
            "/tokens/batch-delete", json={"ids": [first["id"], second["id"], 999]}
        )

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["deleted"] == 2
        assert detail["requested"] == 3
        assert client.get("/tokens").json()["total"] == 0

    def test_batch_delete_empty(self, client):
        assert client.post("/tokens/batch-delete", json={"ids": []}).status_code == 422

    def test_revoke_user_tokens(self, client):
        issue(client, "account_search", user_id=5)
        issue(client, "account_view", user_id=5)
        issue(client, "account_search", user_id=6)

        response = client.delete("/tokens/users/5")

        assert response.json() == {"deleted": 2}
        assert client.get("/tokens").json()["total"] == 1


class TestTokenWorkflow:
    """Test complete token workflows"""

    def test_complete_token_lifecycle(self, client, session):
        # Issue
        created = issue(client, "account_view_pass", secret="masterHashABC").json()
        token_id = created["id"]

        # Verify
        verified = client.post(
            "/tokens/verify",
            json={
                "action_id": "account_view_pass",
                "token_value": created["token_value"],
                "secret": "masterHashABC",
            },
        )
        assert verified.json()["valid"] is True

        # Refresh
        refreshed = client.post(
            f"/tokens/{token_id}/refresh",
            json={"secret": "masterHashABC"},
            headers=HEADERS,
        ).json()

        # Vault follows the new token value
        record = get_token_manager().get_by_id(token_id)
        assert record.token_value == refreshed["token_value"]
        assert get_token_manager().open_vault(record, PRINCIPAL) == "masterHashABC"

        # Revoke
        assert client.delete(f"/tokens/{token_id}").status_code == 204


class TestHandlerDispatch:
    """Test that hashing handlers stay off the event loop"""

    @pytest.mark.parametrize("endpoint", [issue_token, verify_token, update_token, refresh_token])
    def test_hashing_handlers_are_sync(self, endpoint):
        assert not inspect.iscoroutinefunction(endpoint)
