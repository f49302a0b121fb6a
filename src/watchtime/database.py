"""Async SQLAlchemy engine and session management."""

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(url: str) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": False}
    if not url.startswith("sqlite"):
        engine_kwargs.update(pool_size=20, max_overflow=10)
    if url.startswith("postgresql+asyncpg"):
        engine_kwargs["connect_args"] = {"statement_cache_size": 0}

    _engine = create_async_engine(url, **engine_kwargs)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def wait_for_db(retries: int, delay_seconds: float) -> None:
    """Block until the database answers ``SELECT 1``.

    Raises the last ``OperationalError`` once ``retries`` further attempts fail.
    """
    engine = get_engine()
    attempt = 0
    while True:
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("database_connected", attempts=attempt + 1)
            return
        except OperationalError:
            if attempt >= retries:
                logger.error("database_unreachable", attempts=attempt + 1)
                raise
            attempt += 1
            logger.warning("database_connect_retry", attempts_left=retries - attempt + 1, delay=delay_seconds)
            await asyncio.sleep(delay_seconds)


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    async with _session_factory() as session:
        yield session
