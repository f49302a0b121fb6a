"""Bridges Redis pub/sub to WebSocket clients.

Pattern-subscribes to the per-video progress channels written by
``watchtime.ws.relay`` and fans each event out to this instance's listeners.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from watchtime.ws.manager import manager
from watchtime.ws.relay import CHANNEL_PREFIX, DEFAULT_EVENT, client_message

logger = structlog.get_logger()

CHANNEL_PATTERN = f"{CHANNEL_PREFIX}*"


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes progress events to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self.redis = redis_client
        self._running = False

    async def handle_message(self, message: dict) -> int:
        """Deliver one pub/sub message. Returns the number of clients reached."""
        if message.get("type") != "pmessage":
            return 0

        redis_channel = message.get("channel", "")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()
        if not redis_channel.startswith(CHANNEL_PREFIX):
            return 0
        video_id = redis_channel[len(CHANNEL_PREFIX):]

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        if not isinstance(payload, dict) or not video_id:
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        sent = await manager.broadcast_to_video(
            video_id,
            client_message(
                video_id,
                payload.get("event", DEFAULT_EVENT),
                payload.get("user_id", ""),
                payload.get("progress"),
            ),
            exclude=payload.get("origin"),
        )
        if sent > 0:
            logger.debug("pubsub_broadcast", video_id=video_id, recipients=sent)
        return sent

    async def start(self) -> None:
        """Listen until ``stop()`` is called or the task is cancelled."""
        self._running = True
        pubsub = self.redis.pubsub()

        try:
            await pubsub.psubscribe(CHANNEL_PATTERN)
        except RedisError as exc:
            logger.error("pubsub_bridge_unavailable", error=str(exc))
            await pubsub.close()
            return

        logger.info("pubsub_bridge_started", patterns=[CHANNEL_PATTERN])

        try:
            while self._running:
                try:
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True,
                        timeout=1.0,
                    )
                except RedisError as exc:
                    logger.warning("pubsub_receive_failed", error=str(exc))
                    await asyncio.sleep(1.0)
                    continue
                if message is None:
                    continue
                await self.handle_message(message)

        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.close()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
