"""HTTP and WebSocket route tests for the messaging API."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from courier.db.session import get_db
from courier.messaging.realtime import manager
from tests.utils.helpers import assert_error_envelope, create_auth_headers, make_token

BASE = "/api/v1/messaging"
ADMIN = "/api/v1/admin/messaging"


async def _create_group(test_client, owner, *members, name="Team"):
    response = await test_client.post(
        f"{BASE}/conversations",
        json={
            "type": "GROUP",
            "name": name,
            "participant_ids": [str(m.id) for m in members],
        },
        headers=create_auth_headers(owner),
    )
    assert response.status_code == 201
    return response.json()


class TestConversationRoutes:
    """Tests for /conversations endpoints."""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, test_client):
        response = await test_client.get(f"{BASE}/conversations")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_garbage_token(self, test_client):
        response = await test_client.get(
            f"{BASE}/conversations", headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_accepts_cookie_token(self, test_client, alice):
        response = await test_client.get(
            f"{BASE}/conversations", headers={"Cookie": f"access_token={make_token(alice)}"}
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_create_and_list(self, test_client, alice, bob, carol):
        created = await _create_group(test_client, alice, bob, carol)

        assert created["type"] == "GROUP"
        assert len(created["participants"]) == 3

        response = await test_client.get(
            f"{BASE}/conversations", headers=create_auth_headers(bob)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["conversations"][0]["id"] == created["id"]

    @pytest.mark.asyncio
    async def test_direct_with_two_participants(self, test_client, alice, bob, carol):
        response = await test_client.post(
            f"{BASE}/conversations",
            json={"type": "DIRECT", "participant_ids": [str(bob.id), str(carol.id)]},
            headers=create_auth_headers(alice),
        )

        assert response.status_code == 400
        assert_error_envelope(response.json(), "VALIDATION_ERROR")

    @pytest.mark.asyncio
    async def test_non_participant_is_forbidden(self, test_client, alice, bob, dave):
        created = await _create_group(test_client, alice, bob)

        response = await test_client.get(
            f"{BASE}/conversations/{created['id']}/messages",
            headers=create_auth_headers(dave),
        )

        assert response.status_code == 403
        assert_error_envelope(response.json(), "FORBIDDEN")

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, test_client, alice):
        response = await test_client.get(
            f"{BASE}/conversations/00000000-0000-0000-0000-000000000000",
            headers=create_auth_headers(alice),
        )

        assert response.status_code == 404
        assert_error_envelope(response.json(), "NOT_FOUND")

    @pytest.mark.asyncio
    async def test_leave(self, test_client, alice, bob):
        created = await _create_group(test_client, alice, bob)

        response = await test_client.post(
            f"{BASE}/conversations/{created['id']}/leave", headers=create_auth_headers(bob)
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Left conversation successfully"

    @pytest.mark.asyncio
    async def test_mute(self, test_client, alice, bob):
        created = await _create_group(test_client, alice, bob)

        response = await test_client.put(
            f"{BASE}/conversations/{created['id']}/mute",
            json={"muted": True},
            headers=create_auth_headers(bob),
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"muted": True}


class TestMessageRoutes:
    """Tests for sending, reading and counting messages over HTTP."""

    @pytest.mark.asyncio
    async def test_send_and_read_flow(self, test_client, alice, bob):
        created = await _create_group(test_client, alice, bob)
        conversation_url = f"{BASE}/conversations/{created['id']}"

        sent = await test_client.post(
            f"{conversation_url}/messages",
            json={"content": "hello"},
            headers=create_auth_headers(alice),
        )
        assert sent.status_code == 201
        assert sent.json()["content"] == "hello"
        assert sent.json()["status"]["status"] == "READ"

        unread = await test_client.get(f"{BASE}/unread-count", headers=create_auth_headers(bob))
        assert unread.json() == {"count": 1}

        listing = await test_client.get(
            f"{conversation_url}/messages", headers=create_auth_headers(bob)
        )
        assert [m["content"] for m in listing.json()["messages"]] == ["hello"]

        marked = await test_client.put(f"{conversation_url}/read", headers=create_auth_headers(bob))
        assert marked.json()["updated"] == 1

        unread = await test_client.get(
            f"{conversation_url}/unread-count", headers=create_auth_headers(bob)
        )
        assert unread.json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_send_too_long(self, test_client, alice, bob):
        created = await _create_group(test_client, alice, bob)

        response = await test_client.post(
            f"{BASE}/conversations/{created['id']}/messages",
            json={"content": "x" * 5000},
            headers=create_auth_headers(alice),
        )

        assert response.status_code == 400
        assert_error_envelope(response.json(), "VALIDATION_ERROR")

    @pytest.mark.asyncio
    async def test_edit_someone_elses_message(self, test_client, alice, bob):
        created = await _create_group(test_client, alice, bob)
        sent = await test_client.post(
            f"{BASE}/conversations/{created['id']}/messages",
            json={"content": "mine"},
            headers=create_auth_headers(alice),
        )

        response = await test_client.patch(
            f"{BASE}/messages/{sent.json()['id']}",
            json={"content": "hijacked"},
            headers=create_auth_headers(bob),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_and_search(self, test_client, alice, bob):
        created = await _create_group(test_client, alice, bob)
        sent = await test_client.post(
            f"{BASE}/conversations/{created['id']}/messages",
            json={"content": "lunch?"},
            headers=create_auth_headers(alice),
        )

        found = await test_client.get(
            f"{BASE}/messages/search", params={"q": "lunch"}, headers=create_auth_headers(bob)
        )
        assert len(found.json()["messages"]) == 1

        deleted = await test_client.delete(
            f"{BASE}/messages/{sent.json()['id']}", headers=create_auth_headers(alice)
        )
        assert deleted.json()["message"] == "Message deleted successfully"

        found = await test_client.get(
            f"{BASE}/messages/search", params={"q": "lunch"}, headers=create_auth_headers(bob)
        )
        assert found.json()["messages"] == []


class TestAdminSettingsRoutes:
    """Tests for the admin settings endpoints."""

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, test_client, alice):
        response = await test_client.get(f"{ADMIN}/settings", headers=create_auth_headers(alice))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_reads_and_updates(self, test_client, admin_user):
        headers = create_auth_headers(admin_user)

        response = await test_client.get(f"{ADMIN}/settings", headers=headers)
        assert response.status_code == 200
        assert response.json()["max_message_length"] == 2000

        response = await test_client.put(
            f"{ADMIN}/settings", json={"max_message_length": 300}, headers=headers
        )
        assert response.json()["max_message_length"] == 300

        response = await test_client.post(
            f"{ADMIN}/settings/toggle", json={"enabled": False}, headers=headers
        )
        assert response.json()["enabled"] is False

    @pytest.mark.asyncio
    async def test_update_out_of_bounds(self, test_client, admin_user):
        response = await test_client.put(
            f"{ADMIN}/settings",
            json={"max_group_participants": 1},
            headers=create_auth_headers(admin_user),
        )

        assert response.status_code == 422


class TestWebSocketRoute:
    """Tests for the realtime WebSocket endpoint."""

    @pytest.fixture
    def ws_client(self, test_app, session_factory):
        def override_get_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        test_app.dependency_overrides[get_db] = override_get_db
        return TestClient(test_app)

    def test_connect_and_ping(self, ws_client, alice):
        with ws_client.websocket_connect(f"{BASE}/ws?token={make_token(alice)}") as websocket:
            assert websocket.receive_json() == {"event": "connected", "user_id": str(alice.id)}
            assert manager.is_user_connected(alice.id)

            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

            websocket.send_text("hello")
            assert websocket.receive_json()["event"] == "error"

    def test_rejects_missing_token(self, ws_client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with ws_client.websocket_connect(f"{BASE}/ws") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008
