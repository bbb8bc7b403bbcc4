"""Tests for the HTTP API."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from eventthreads.api.server import create_api_app, duration_from_expiry
from eventthreads.config import create_test_config
from eventthreads.exceptions import ValidationError

ADMIN_PASSWORD = "test-admin-password"


@pytest.fixture
def settings(tmp_path):
    return create_test_config(
        database_url=f"sqlite:///{tmp_path}/api.db", enable_audit_log=True
    )


@pytest.fixture
def client(settings, clock):
    app = create_api_app(settings, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


def login(client, username, **extra):
    response = client.post("/api/auth/login", json={"username": username, **extra})
    assert response.status_code == 200, response.text
    return response.json()["user"]


def create_thread(client, creator_id, **overrides):
    body = {
        "title": "Sunset run",
        "description": "5k along the river",
        "location": "Boathouse",
        "creatorId": creator_id,
        "tags": ["running"],
        "durationHours": 2,
        **overrides,
    }
    return client.post("/api/threads", json=body)


@pytest.fixture
def carol(client):
    return login(client, "carol")


@pytest.fixture
def alice(client):
    return login(client, "alice")


@pytest.fixture
def admin(client):
    return login(client, "root", password=ADMIN_PASSWORD, isAdmin=True)


@pytest.fixture
def thread(client, carol):
    response = create_thread(client, carol["id"])
    assert response.status_code == 200, response.text
    return response.json()["thread"]


class TestHealthAndLogin:
    def test_health_check(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": True}

    def test_login_returns_user(self, client) -> None:
        user = login(client, "alice")

        assert user["username"] == "alice"
        assert user["isAdmin"] is False
        assert login(client, "ALICE")["id"] == user["id"]

    def test_admin_login(self, admin) -> None:
        assert admin["isAdmin"] is True

    def test_admin_login_wrong_password(self, client) -> None:
        response = client.post(
            "/api/auth/login",
            json={"username": "root", "password": "nope", "isAdmin": True},
        )

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_reserved_username(self, client) -> None:
        response = client.post("/api/auth/login", json={"username": "System"})

        assert response.status_code == 400


class TestThreadEndpoints:
    def test_create_thread(self, client, carol, clock) -> None:
        response = create_thread(client, carol["id"], creator="spoofed")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        thread = body["thread"]
        assert thread["creator"] == "carol"
        assert thread["creatorId"] == carol["id"]
        assert thread["members"] == [carol["id"]]
        assert thread["pendingRequests"] == []
        assert thread["chat"] == []
        expires_at = datetime.fromisoformat(thread["expiresAt"])
        assert expires_at == clock.now + timedelta(hours=2)

    def test_legacy_expiry_converted_to_duration(self, client, carol, clock) -> None:
        expires_at = clock.now + timedelta(hours=4, minutes=10)

        response = create_thread(
            client,
            carol["id"],
            durationHours=None,
            expiresAt=expires_at.isoformat(),
        )

        assert response.status_code == 200, response.text
        stored = datetime.fromisoformat(response.json()["thread"]["expiresAt"])
        assert stored == clock.now + timedelta(hours=4)

    def test_invalid_duration(self, client, carol) -> None:
        response = create_thread(client, carol["id"], durationHours=3)

        assert response.status_code == 400
        assert "Duration must be one of" in response.json()["message"]

    def test_missing_duration(self, client, carol) -> None:
        response = create_thread(client, carol["id"], durationHours=None)

        assert response.status_code == 400

    def test_malformed_body(self, client, carol) -> None:
        response = client.post("/api/threads", json={"creatorId": carol["id"]})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert any(detail["field"].endswith("title") for detail in body["details"])

    def test_unknown_creator(self, client) -> None:
        response = create_thread(client, "not-a-user")

        assert response.status_code == 404

    def test_get_unknown_thread(self, client) -> None:
        response = client.get("/api/threads/missing")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_update_by_creator(self, client, carol, thread) -> None:
        response = client.put(
            f"/api/threads/{thread['id']}",
            json={"userId": carol["id"], "title": "Sunrise run"},
        )

        assert response.status_code == 200
        assert response.json()["thread"]["title"] == "Sunrise run"
        assert response.json()["thread"]["location"] == "Boathouse"

    def test_update_by_other_user(self, client, alice, thread) -> None:
        response = client.put(
            f"/api/threads/{thread['id']}",
            json={"userId": alice["id"], "title": "Mine now"},
        )

        assert response.status_code == 403

    def test_delete_by_creator(self, client, carol, thread) -> None:
        response = client.request(
            "DELETE", f"/api/threads/{thread['id']}", json={"userId": carol["id"]}
        )

        assert response.status_code == 200
        assert client.get(f"/api/threads/{thread['id']}").status_code == 404

    def test_delete_by_other_user(self, client, alice, thread) -> None:
        response = client.request(
            "DELETE", f"/api/threads/{thread['id']}", json={"userId": alice["id"]}
        )

        assert response.status_code == 403

    def test_delete_by_admin(self, client, admin, thread) -> None:
        response = client.request(
            "DELETE", f"/api/threads/{thread['id']}", json={"userId": admin["id"]}
        )

        assert response.status_code == 200


class TestMembershipFlow:
    def test_join_approve_and_chat(self, client, carol, alice, thread) -> None:
        thread_url = f"/api/threads/{thread['id']}"

        response = client.post(f"{thread_url}/join", json={"userId": alice["id"]})
        assert response.status_code == 200

        response = client.post(f"{thread_url}/join", json={"userId": alice["id"]})
        assert response.status_code == 409

        pending = client.get(thread_url).json()["thread"]
        assert pending["pendingRequests"] == [alice["id"]]

        # The requester cannot approve themselves
        response = client.post(
            f"{thread_url}/requests",
            json={"userId": alice["id"], "approve": True, "currentUserId": alice["id"]},
        )
        assert response.status_code == 403

        response = client.post(
            f"{thread_url}/requests",
            json={"userId": alice["id"], "approve": True, "currentUserId": carol["id"]},
        )
        assert response.status_code == 200

        response = client.post(
            f"{thread_url}/messages",
            json={"userId": alice["id"], "message": " hi all ", "user": "spoofed"},
        )
        assert response.status_code == 200
        message = response.json()["message"]
        assert message["user"] == "alice"
        assert message["message"] == "hi all"
        assert message["isSystem"] is False

        chat = client.get(thread_url, params={"userId": alice["id"]}).json()["thread"][
            "chat"
        ]
        assert [entry["message"] for entry in chat] == [
            "alice joined the thread",
            "hi all",
        ]
        assert chat[0]["user"] == "System"
        assert chat[0]["isSystem"] is True

    def test_deny(self, client, carol, alice, thread) -> None:
        thread_url = f"/api/threads/{thread['id']}"
        client.post(f"{thread_url}/join", json={"userId": alice["id"]})

        response = client.post(
            f"{thread_url}/requests",
            json={
                "userId": alice["id"],
                "approve": False,
                "currentUserId": carol["id"],
            },
        )

        assert response.status_code == 200
        body = client.get(thread_url).json()["thread"]
        assert body["pendingRequests"] == []
        assert body["members"] == [carol["id"]]

    def test_non_member_cannot_post(self, client, alice, thread) -> None:
        response = client.post(
            f"/api/threads/{thread['id']}/messages",
            json={"userId": alice["id"], "message": "let me in"},
        )

        assert response.status_code == 403

    def test_blank_message(self, client, carol, thread) -> None:
        response = client.post(
            f"/api/threads/{thread['id']}/messages",
            json={"userId": carol["id"], "message": "   "},
        )

        assert response.status_code == 400

    def test_chat_hidden_from_non_members(self, client, carol, alice, admin, thread) -> None:
        client.post(
            f"/api/threads/{thread['id']}/messages",
            json={"userId": carol["id"], "message": "members only"},
        )

        def chat_seen_by(user_id):
            params = {"userId": user_id} if user_id else None
            threads = client.get("/api/threads", params=params).json()["threads"]
            return threads[0]["chat"]

        assert len(chat_seen_by(carol["id"])) == 1
        assert len(chat_seen_by(admin["id"])) == 1
        assert chat_seen_by(alice["id"]) == []
        assert chat_seen_by(None) == []


class TestExpiry:
    def test_expired_thread_leaves_listing(self, client, carol, alice, thread, clock):
        clock.advance(hours=2)

        listing = client.get("/api/threads").json()["threads"]
        assert listing == []

        # Still reachable by id
        assert client.get(f"/api/threads/{thread['id']}").status_code == 200

        response = client.post(
            f"/api/threads/{thread['id']}/join", json={"userId": alice["id"]}
        )
        assert response.status_code == 404

        response = client.post(
            f"/api/threads/{thread['id']}/messages",
            json={"userId": carol["id"], "message": "anyone?"},
        )
        assert response.status_code == 404


class TestAdminDashboard:
    def test_dashboard(self, client, carol, alice, admin, thread) -> None:
        response = client.get("/api/admin/dashboard", params={"userId": admin["id"]})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalThreads"] == 1
        assert data["activeUsers"] == 1
        assert data["totalUsers"] == 3
        assert data["threads"][0]["memberDetails"] == [
            {"id": carol["id"], "username": "carol"}
        ]
        assert {user["username"] for user in data["users"]} == {
            "carol",
            "alice",
            "root",
        }

    def test_dashboard_requires_admin(self, client, alice) -> None:
        response = client.get("/api/admin/dashboard", params={"userId": alice["id"]})

        assert response.status_code == 403

    def test_dashboard_requires_user(self, client) -> None:
        response = client.get("/api/admin/dashboard")

        assert response.status_code == 401


class TestDurationFromExpiry:
    def test_rounds_to_nearest_hour(self, clock) -> None:
        now = clock.now
        assert duration_from_expiry(now + timedelta(minutes=95), now) == 2
        assert duration_from_expiry(now + timedelta(minutes=85), now) == 1
        assert duration_from_expiry(now + timedelta(hours=8), now) == 8

    def test_naive_expiry_rejected(self, clock) -> None:
        with pytest.raises(ValidationError):
            duration_from_expiry(datetime(2026, 1, 1, 14, 0), clock.now)


def test_unexpected_error_is_generic(settings, clock) -> None:
    app = create_api_app(settings, clock=clock)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        app.state.services.registry.list_active = AsyncMock(
            side_effect=RuntimeError("disk on fire")
        )
        response = test_client.get("/api/threads")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "message": "An unexpected error occurred",
    }


def test_admin_delete_goes_through_admin_projection(settings, clock) -> None:
    app = create_api_app(settings, clock=clock)
    with TestClient(app) as test_client:
        admin_projection = app.state.services.admin
        admin_projection.delete_thread = AsyncMock(
            wraps=admin_projection.delete_thread
        )
        carol = login(test_client, "carol")
        root = login(test_client, "root", password=ADMIN_PASSWORD, isAdmin=True)
        first = create_thread(test_client, carol["id"]).json()["thread"]
        second = create_thread(test_client, carol["id"]).json()["thread"]

        response = test_client.request(
            "DELETE", f"/api/threads/{first['id']}", json={"userId": root["id"]}
        )
        assert response.status_code == 200
        admin_projection.delete_thread.assert_awaited_once()
        caller, thread_id = admin_projection.delete_thread.await_args.args
        assert caller.user_id == root["id"]
        assert thread_id == first["id"]

        response = test_client.request(
            "DELETE", f"/api/threads/{second['id']}", json={"userId": carol["id"]}
        )
        assert response.status_code == 200
        admin_projection.delete_thread.assert_awaited_once()
        assert test_client.get("/api/threads").json()["threads"] == []
