"""Redis client shared by rate limiting and the progress relay.

Redis is optional. Without it the relay only reaches WebSocket clients
connected to this instance and requests are not rate limited.
"""

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> bool:
    """Connect to Redis and check it answers.

    Returns False and leaves Redis disabled when the server is unreachable.
    """
    global _client  # noqa: PLW0603
    client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning("redis_unavailable", error=str(exc))
        await client.aclose()
        return False

    _client = client
    logger.info("redis_connected", max_connections=max_connections)
    return True


async def close_redis() -> None:
    """Close the Redis client and its pool."""
    global _client  # noqa: PLW0603
    if _client:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Get the Redis client, raising if Redis is disabled."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


def get_redis_or_none() -> redis.Redis | None:
    """Get the Redis client, or None in single-instance mode."""
    return _client
