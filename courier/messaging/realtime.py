"""Live push of messaging events to connected WebSocket sessions.

Each worker keeps its own registry of sessions. When Redis is available,
events are published on a shared channel and every worker's listener
delivers them to its local sessions, so a user connected to worker A still
sees a message sent through worker B. Without Redis, delivery is local only.

Nothing here is required for correctness: messages are committed before any
broadcast, and a client that misses a push sees the message on next fetch.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from fastapi import WebSocket

from courier.core import redis as redis_module
from courier.core.config import settings

logger = logging.getLogger(__name__)

EVENT_MESSAGE_NEW = "message:new"
EVENT_MESSAGE_STATUS = "message:status"
EVENT_MESSAGE_UPDATED = "message:updated"
EVENT_MESSAGE_DELETED = "message:deleted"
EVENT_CONVERSATION_NEW = "conversation:new"


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: dict[UUID, set[WebSocket]] = {}

    async def connect(self, user_id: UUID, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.setdefault(user_id, set()).add(websocket)
        logger.info(
            "WS connected | user=%s | sessions=%d",
            user_id,
            len(self.active_connections[user_id]),
        )

    def disconnect(self, user_id: UUID, websocket: WebSocket) -> None:
        sessions = self.active_connections.get(user_id)
        if sessions and websocket in sessions:
            sessions.remove(websocket)
            if not sessions:
                self.active_connections.pop(user_id, None)
        logger.info("WS disconnected | user=%s", user_id)

    def is_user_connected(self, user_id: UUID) -> bool:
        return bool(self.active_connections.get(user_id))

    def connected_user_count(self) -> int:
        return len(self.active_connections)

    async def send_to_user(self, user_id: UUID, payload: dict[str, Any]) -> int:
        """Send to every session of a user; returns how many sends succeeded."""
        sessions = list(self.active_connections.get(user_id, ()))
        if not sessions:
            return 0

        results = await asyncio.gather(
            *(ws.send_json(payload) for ws in sessions),
            return_exceptions=True,
        )

        delivered = 0
        for ws, outcome in zip(sessions, results):
            if isinstance(outcome, BaseException):
                logger.warning("Dropping WS session for user %s after send failure: %s", user_id, outcome)
                self.disconnect(user_id, ws)
            else:
                delivered += 1
        return delivered

    async def deliver(self, event: dict[str, Any]) -> int:
        """Deliver a routed event to the local sessions of its recipients."""
        payload = event.get("payload")
        if not isinstance(payload, dict):
            return 0

        delivered = 0
        for raw_id in event.get("recipients", []):
            try:
                user_id = UUID(str(raw_id))
            except ValueError:
                continue
            delivered += await self.send_to_user(user_id, payload)
        return delivered


class RealtimeBroadcaster:
    def __init__(self, manager: ConnectionManager, channel: str | None = None) -> None:
        self.manager = manager
        self.channel = channel or settings.REALTIME_CHANNEL

    @property
    def uses_redis(self) -> bool:
        return settings.REALTIME_ENABLED and redis_module.redis_client is not None

    async def broadcast(
        self,
        conversation_id: UUID,
        recipient_ids: Iterable[UUID],
        message: dict[str, Any],
    ) -> None:
        """Push a new message to every active participant, sender's own sessions included."""
        await self._emit(
            EVENT_MESSAGE_NEW,
            recipient_ids,
            {"conversation_id": str(conversation_id), "message": message},
        )

    async def broadcast_status(
        self,
        conversation_id: UUID,
        recipient_ids: Iterable[UUID],
        user_id: UUID,
        message_id: int | None,
        status: str,
    ) -> None:
        await self._emit(
            EVENT_MESSAGE_STATUS,
            recipient_ids,
            {
                "conversation_id": str(conversation_id),
                "user_id": str(user_id),
                "message_id": message_id,
                "status": status,
            },
        )

    async def broadcast_message_updated(
        self,
        conversation_id: UUID,
        recipient_ids: Iterable[UUID],
        message: dict[str, Any],
    ) -> None:
        await self._emit(
            EVENT_MESSAGE_UPDATED,
            recipient_ids,
            {"conversation_id": str(conversation_id), "message": message},
        )

    async def broadcast_message_deleted(
        self,
        conversation_id: UUID,
        recipient_ids: Iterable[UUID],
        message_id: int,
    ) -> None:
        await self._emit(
            EVENT_MESSAGE_DELETED,
            recipient_ids,
            {"conversation_id": str(conversation_id), "message_id": message_id},
        )

    async def broadcast_conversation_created(
        self,
        recipient_ids: Iterable[UUID],
        conversation: dict[str, Any],
    ) -> None:
        await self._emit(EVENT_CONVERSATION_NEW, recipient_ids, {"conversation": conversation})

    async def _emit(
        self,
        event_name: str,
        recipient_ids: Iterable[UUID],
        data: dict[str, Any],
    ) -> None:
        event = {
            "recipients": [str(uid) for uid in recipient_ids],
            "payload": {"event": event_name, **data},
        }
        if not event["recipients"]:
            return

        try:
            if self.uses_redis:
                try:
                    await redis_module.publish_event(self.channel, event)
                    return
                except Exception:
                    logger.exception("Redis publish failed for %s, delivering locally", event_name)
            await self.manager.deliver(event)
        except Exception:
            logger.exception("Realtime broadcast of %s failed", event_name)

    async def listen(self) -> None:
        """Relay events from the shared channel to local sessions until cancelled."""
        pubsub = await redis_module.subscribe(self.channel)
        logger.info("Realtime listener subscribed to %s", self.channel)
        try:
            async for raw in pubsub.listen():
                if raw.get("type") != "message":
                    continue
                event = redis_module.decode_event(raw["data"])
                if event is None:
                    logger.warning("Ignoring malformed realtime event on %s", self.channel)
                    continue
                try:
                    await self.manager.deliver(event)
                except Exception:
                    logger.exception("Failed to deliver realtime event")
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
            logger.info("Realtime listener stopped")


manager = ConnectionManager()
broadcaster = RealtimeBroadcaster(manager)
