"""Publish raw playback-progress events to live listeners of a video.

Fire-and-forget and at-most-once: events are not persisted, not validated
against the stored progress record, and a failed publish is logged and dropped.
With Redis available events go through pub/sub so every API instance's
``PubSubBridge`` can deliver them; without Redis they reach local listeners only.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from redis.exceptions import RedisError

from watchtime.config import get_settings
from watchtime.redis_client import get_redis_or_none
from watchtime.ws.manager import manager

logger = structlog.get_logger()

CHANNEL_PREFIX = "pubsub:video_progress:"
DEFAULT_EVENT = "video_progress"


def channel_for(video_id: str) -> str:
    return f"{CHANNEL_PREFIX}{video_id}"


def client_message(video_id: str, event: str, user_id: str, progress: Any) -> dict[str, Any]:  # noqa: ANN401
    """Shape of a relayed event as seen by WebSocket clients."""
    return {
        "type": event,
        "video_id": video_id,
        "data": {"user_id": user_id, "progress": progress},
    }


async def publish_progress(
    video_id: str,
    user_id: str,
    progress: Any,  # noqa: ANN401
    *,
    event: str = DEFAULT_EVENT,
    origin: str | None = None,
) -> None:
    """Relay a progress event to everyone listening to ``video_id`` except ``origin``."""
    if not get_settings().relay_enabled:
        return

    redis = get_redis_or_none()
    if redis is None:
        await manager.broadcast_to_video(
            video_id,
            client_message(video_id, event, user_id, progress),
            exclude=origin,
        )
        return

    envelope = {
        "event": event,
        "user_id": user_id,
        "progress": progress,
        "origin": origin,
    }
    try:
        await redis.publish(channel_for(video_id), json.dumps(envelope))
    except (RedisError, OSError, TypeError, ValueError) as exc:
        logger.warning("relay_publish_failed", video_id=video_id, user_id=user_id, event=event, error=str(exc))
