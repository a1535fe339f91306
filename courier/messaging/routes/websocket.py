import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from courier.auth.dependencies import authenticate_websocket
from courier.db.session import get_db
from courier.messaging.realtime import manager

logger = logging.getLogger(__name__)

router = APIRouter()

PING_FRAMES = ("ping", '{"event":"ping"}', '{"type":"ping"}')


@router.websocket("/ws")
async def messaging_websocket(websocket: WebSocket, db: Session = Depends(get_db)) -> None:
    user = authenticate_websocket(websocket, db)
    user_id = user.id if user else None
    # Nothing below needs the database; don't hold a connection for the socket's lifetime
    db.close()

    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(user_id, websocket)
    await websocket.send_json({"event": "connected", "user_id": str(user_id)})

    try:
        while True:
            text = await websocket.receive_text()
            if text.strip().lower().replace(" ", "") in PING_FRAMES:
                await websocket.send_text("pong")
                continue
            # Sends go through the HTTP API so they are persisted before any push
            await websocket.send_json(
                {"event": "error", "detail": "Send messages through the HTTP API"}
            )
    except WebSocketDisconnect:
        logger.debug("WebSocket closed by client %s", user_id)
    finally:
        manager.disconnect(user_id, websocket)
