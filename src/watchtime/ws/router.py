"""WebSocket endpoint relaying live playback positions between viewers of a video."""

import json
import uuid

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
import structlog

from watchtime.ws.manager import manager
from watchtime.ws.relay import publish_progress

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    user_id: str | None = Query(default=None),
) -> None:
    """Single WebSocket endpoint with per-video subscriptions.

    Protocol:
        Client -> Server:
            {"action": "subscribe", "video_id": "abc"}
            {"action": "unsubscribe", "video_id": "abc"}
            {"action": "progress", "video_id": "abc", "progress": 42.5}
            {"action": "ping"}

        Server -> Client:
            {"type": "video_progress", "video_id": "abc", "data": {"user_id": "...", "progress": ...}}
            {"type": "subscribed", "video_id": "abc"}
            {"type": "unsubscribed", "video_id": "abc"}
            {"type": "pong"}
            {"type": "error", "message": "..."}

    Progress events are relayed as-is and never touch stored progress.
    """
    if not user_id:
        await websocket.close(code=4001, reason="User ID is required")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, user_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            action = msg.get("action")
            video_id = msg.get("video_id", "")
            if not isinstance(video_id, str):
                video_id = str(video_id)

            if action == "subscribe":
                ok = await manager.subscribe(conn_id, video_id)
                if ok:
                    await websocket.send_json({"type": "subscribed", "video_id": video_id})
                else:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Cannot subscribe to video: {video_id}",
                    })

            elif action == "unsubscribe":
                await manager.unsubscribe(conn_id, video_id)
                await websocket.send_json({"type": "unsubscribed", "video_id": video_id})

            elif action == "progress":
                if not video_id:
                    await websocket.send_json({"type": "error", "message": "video_id is required"})
                    continue
                await publish_progress(video_id, user_id, msg.get("progress"), origin=conn_id)

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
