"""Shared test fixtures.

Database tests run against a throwaway SQLite file (aiosqlite) with the ORM
schema created directly. Redis is left uninitialized, so rate limiting is
skipped and the progress relay delivers to local WebSocket listeners only.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("WATCHTIME_LOG_FORMAT", "console")
os.environ.setdefault("WATCHTIME_LOG_LEVEL", "WARNING")

from watchtime.config import get_settings  # noqa: E402
from watchtime.database import close_db, get_engine, get_session, init_db  # noqa: E402
from watchtime.db.base import Base  # noqa: E402
from watchtime.db import models  # noqa: E402, F401
from watchtime.redis_client import close_redis  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings() -> None:
    get_settings.cache_clear()


async def _init_sqlite(db_path: Path) -> None:
    await init_db(f"sqlite+aiosqlite:///{db_path}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def db_session(tmp_path: Path) -> AsyncGenerator[AsyncSession, None]:
    """A session on a fresh database with the progress schema."""
    await _init_sqlite(tmp_path / "watchtime.db")
    sessions = get_session()
    session = await anext(sessions)
    try:
        yield session
    finally:
        await sessions.aclose()
        await close_db()


@pytest_asyncio.fixture
async def client(tmp_path: Path) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client on a fresh database, without Redis."""
    from watchtime.main import create_app

    await close_redis()
    await _init_sqlite(tmp_path / "watchtime.db")

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await close_db()


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"User-Id": "viewer-1"}
