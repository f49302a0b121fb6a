"""FastAPI application factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from watchtime.config import get_settings
from watchtime.database import close_db, init_db, wait_for_db
from watchtime.health.router import router as health_router
from watchtime.middleware import setup_middleware
from watchtime.progress.router import router as progress_router
from watchtime.redis_client import close_redis, get_redis, init_redis
from watchtime.ws.bridge import PubSubBridge
from watchtime.ws.manager import manager
from watchtime.ws.router import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await wait_for_db(settings.db_connect_retries, settings.db_connect_retry_delay_seconds)
    manager.max_subscriptions = settings.ws_max_subscriptions_per_connection

    # Without Redis, progress events only reach this instance's listeners
    bridge: PubSubBridge | None = None
    bridge_task: asyncio.Task[None] | None = None
    if await init_redis(settings.redis_url, max_connections=settings.redis_max_connections):
        bridge = PubSubBridge(get_redis())
        bridge_task = asyncio.create_task(bridge.start())

    logger.info(
        "app_started",
        version=settings.app_version,
        environment=settings.environment,
        relay="redis" if bridge else "local",
    )

    yield

    if bridge is not None and bridge_task is not None:
        await bridge.stop()
        bridge_task.cancel()
        try:
            await bridge_task
        except asyncio.CancelledError:
            pass

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Watchtime API",
        description="Tracks which parts of each video a user has watched",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progress_router)
    app.include_router(ws_router)

    return app


app = create_app()
