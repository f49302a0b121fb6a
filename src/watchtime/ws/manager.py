"""WebSocket connection manager.

Tracks active WebSocket connections and which videos each one listens to.
Fans relayed progress events out to the listeners of a video.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket
import structlog

logger = structlog.get_logger()

MAX_VIDEO_ID_LENGTH = 128


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    user_id: str
    subscriptions: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Manages all active WebSocket connections.

    Safe for asyncio via the single-threaded event loop.
    """

    def __init__(self, max_subscriptions: int = 10) -> None:
        self.max_subscriptions = max_subscriptions
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._videos: dict[str, set[str]] = defaultdict(set)  # video_id -> {conn_ids}
        self._user_connections: dict[str, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: str) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)

    async def disconnect(self, conn_id: str) -> None:
        """Remove a WebSocket connection and its subscriptions."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        for video_id in client.subscriptions:
            listeners = self._videos.get(video_id)
            if listeners is not None:
                listeners.discard(conn_id)
                if not listeners:
                    del self._videos[video_id]

        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id, messages_sent=client.messages_sent)

    async def subscribe(self, conn_id: str, video_id: str) -> bool:
        """Start relaying a video's progress events to a connection. Returns False if refused."""
        client = self._connections.get(conn_id)
        if client is None:
            return False

        if not video_id or len(video_id) > MAX_VIDEO_ID_LENGTH:
            return False

        if video_id not in client.subscriptions and len(client.subscriptions) >= self.max_subscriptions:
            return False

        client.subscriptions.add(video_id)
        self._videos[video_id].add(conn_id)
        logger.debug("ws_subscribed", conn_id=conn_id, video_id=video_id)
        return True

    async def unsubscribe(self, conn_id: str, video_id: str) -> bool:
        """Stop relaying a video's events to a connection."""
        client = self._connections.get(conn_id)
        if client is None:
            return False

        client.subscriptions.discard(video_id)
        listeners = self._videos.get(video_id)
        if listeners is not None:
            listeners.discard(conn_id)
            if not listeners:
                del self._videos[video_id]
        return True

    async def broadcast_to_video(
        self,
        video_id: str,
        message: dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        """Send a message to every listener of a video except ``exclude``.

        Best effort: a failed send drops that connection and is not retried.
        Returns the number of clients that received the message.
        """
        conn_ids = [c for c in self._videos.get(video_id, set()) if c != exclude]
        if not conn_ids:
            return 0

        payload = json.dumps(message)
        sent = 0
        failed: list[str] = []

        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is None:
                continue
            try:
                await client.websocket.send_text(payload)
                client.messages_sent += 1
                sent += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning("ws_send_failed", conn_id=conn_id, video_id=video_id, error=str(exc))
                failed.append(conn_id)

        for conn_id in failed:
            await self.disconnect(conn_id)

        return sent

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "videos": {video_id: len(conns) for video_id, conns in self._videos.items() if conns},
        }


# Global singleton
manager = ConnectionManager()
