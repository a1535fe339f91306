"""Tests for the WebSocket connection registry and realtime broadcaster."""

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from courier.core import redis as redis_module
from courier.messaging.realtime import (
    EVENT_MESSAGE_NEW,
    EVENT_MESSAGE_STATUS,
    ConnectionManager,
    RealtimeBroadcaster,
)


def _socket(fail: bool = False) -> AsyncMock:
    websocket = AsyncMock()
    if fail:
        websocket.send_json.side_effect = RuntimeError("connection closed")
    return websocket


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def broadcaster(manager):
    return RealtimeBroadcaster(manager, channel="test:events")


class FakePubSub:
    """Minimal stand-in for redis.asyncio PubSub yielding canned frames."""

    def __init__(self, frames):
        self.frames = frames
        self.unsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        for frame in self.frames:
            yield frame


class TestConnectionManager:
    """Tests for ConnectionManager."""

    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self, manager):
        user_id = uuid.uuid4()
        websocket = _socket()

        await manager.connect(user_id, websocket)

        websocket.accept.assert_awaited_once()
        assert manager.is_user_connected(user_id)
        assert manager.connected_user_count() == 1

    @pytest.mark.asyncio
    async def test_multiple_sessions_per_user(self, manager):
        user_id = uuid.uuid4()
        first, second = _socket(), _socket()
        await manager.connect(user_id, first)
        await manager.connect(user_id, second)

        sent = await manager.send_to_user(user_id, {"event": "ping"})

        assert sent == 2
        first.send_json.assert_awaited_once_with({"event": "ping"})
        second.send_json.assert_awaited_once_with({"event": "ping"})

    @pytest.mark.asyncio
    async def test_disconnect_last_session(self, manager):
        user_id = uuid.uuid4()
        websocket = _socket()
        await manager.connect(user_id, websocket)

        manager.disconnect(user_id, websocket)

        assert not manager.is_user_connected(user_id)
        assert manager.connected_user_count() == 0

    @pytest.mark.asyncio
    async def test_failed_session_is_dropped(self, manager):
        user_id = uuid.uuid4()
        healthy, broken = _socket(), _socket(fail=True)
        await manager.connect(user_id, healthy)
        await manager.connect(user_id, broken)

        sent = await manager.send_to_user(user_id, {"event": "x"})

        assert sent == 1
        assert manager.active_connections[user_id] == {healthy}

    @pytest.mark.asyncio
    async def test_send_to_offline_user(self, manager):
        assert await manager.send_to_user(uuid.uuid4(), {"event": "x"}) == 0

    @pytest.mark.asyncio
    async def test_deliver_skips_bad_recipients(self, manager):
        user_id = uuid.uuid4()
        websocket = _socket()
        await manager.connect(user_id, websocket)

        delivered = await manager.deliver(
            {"recipients": ["not-a-uuid", str(user_id)], "payload": {"event": "x"}}
        )

        assert delivered == 1

    @pytest.mark.asyncio
    async def test_deliver_requires_payload(self, manager):
        assert await manager.deliver({"recipients": [str(uuid.uuid4())]}) == 0


class TestLocalBroadcast:
    """Broadcasting without Redis delivers straight to local sessions."""

    @pytest.mark.asyncio
    async def test_message_reaches_every_recipient_including_sender(
        self, manager, broadcaster
    ):
        sender, recipient = uuid.uuid4(), uuid.uuid4()
        sender_ws, recipient_ws = _socket(), _socket()
        await manager.connect(sender, sender_ws)
        await manager.connect(recipient, recipient_ws)
        conversation_id = uuid.uuid4()

        await broadcaster.broadcast(conversation_id, [sender, recipient], {"id": 1, "content": "hi"})

        expected = {
            "event": EVENT_MESSAGE_NEW,
            "conversation_id": str(conversation_id),
            "message": {"id": 1, "content": "hi"},
        }
        sender_ws.send_json.assert_awaited_once_with(expected)
        recipient_ws.send_json.assert_awaited_once_with(expected)

    @pytest.mark.asyncio
    async def test_status_event_shape(self, manager, broadcaster):
        sender, reader = uuid.uuid4(), uuid.uuid4()
        sender_ws = _socket()
        await manager.connect(sender, sender_ws)
        conversation_id = uuid.uuid4()

        await broadcaster.broadcast_status(conversation_id, [sender], reader, 7, "READ")

        sender_ws.send_json.assert_awaited_once_with(
            {
                "event": EVENT_MESSAGE_STATUS,
                "conversation_id": str(conversation_id),
                "user_id": str(reader),
                "message_id": 7,
                "status": "READ",
            }
        )

    @pytest.mark.asyncio
    async def test_offline_recipients_are_ignored(self, broadcaster):
        await broadcaster.broadcast(uuid.uuid4(), [uuid.uuid4()], {"id": 1})

    @pytest.mark.asyncio
    async def test_broadcast_swallows_delivery_errors(self, broadcaster, monkeypatch):
        monkeypatch.setattr(
            broadcaster.manager, "deliver", AsyncMock(side_effect=RuntimeError("boom"))
        )

        await broadcaster.broadcast(uuid.uuid4(), [uuid.uuid4()], {"id": 1})


class TestRedisBroadcast:
    """Broadcasting through the shared pub/sub channel."""

    @pytest.mark.asyncio
    async def test_publishes_routed_event(self, broadcaster, monkeypatch):
        monkeypatch.setattr(redis_module, "redis_client", MagicMock())
        publish = AsyncMock(return_value=1)
        monkeypatch.setattr(redis_module, "publish_event", publish)
        deliver = AsyncMock()
        monkeypatch.setattr(broadcaster.manager, "deliver", deliver)
        recipient = uuid.uuid4()
        conversation_id = uuid.uuid4()

        await broadcaster.broadcast(conversation_id, [recipient], {"id": 3})

        publish.assert_awaited_once_with(
            "test:events",
            {
                "recipients": [str(recipient)],
                "payload": {
                    "event": EVENT_MESSAGE_NEW,
                    "conversation_id": str(conversation_id),
                    "message": {"id": 3},
                },
            },
        )
        deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure_falls_back_to_local(self, broadcaster, monkeypatch):
        monkeypatch.setattr(redis_module, "redis_client", MagicMock())
        monkeypatch.setattr(
            redis_module, "publish_event", AsyncMock(side_effect=ConnectionError("down"))
        )
        deliver = AsyncMock()
        monkeypatch.setattr(broadcaster.manager, "deliver", deliver)

        await broadcaster.broadcast(uuid.uuid4(), [uuid.uuid4()], {"id": 4})

        deliver.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_listener_relays_to_local_sessions(self, manager, broadcaster, monkeypatch):
        user_id = uuid.uuid4()
        websocket = _socket()
        await manager.connect(user_id, websocket)

        payload = {"event": EVENT_MESSAGE_NEW, "message": {"id": 5}}
        pubsub = FakePubSub(
            [
                {"type": "subscribe", "data": 1},
                {"type": "message", "data": "not json"},
                {
                    "type": "message",
                    "data": json.dumps({"recipients": [str(user_id)], "payload": payload}),
                },
            ]
        )
        monkeypatch.setattr(redis_module, "subscribe", AsyncMock(return_value=pubsub))

        await broadcaster.listen()

        websocket.send_json.assert_awaited_once_with(payload)
        pubsub.unsubscribe.assert_awaited_once_with("test:events")
        pubsub.aclose.assert_awaited_once()


class TestDecodeEvent:
    def test_valid_object(self):
        assert redis_module.decode_event('{"a": 1}') == {"a": 1}

    def test_rejects_non_objects(self):
        assert redis_module.decode_event("[1, 2]") is None
        assert redis_module.decode_event("{broken") is None
        assert redis_module.decode_event(None) is None
