"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from watchtime.config import get_settings
from watchtime.database import get_session
from watchtime.redis_client import get_redis_or_none
from watchtime.ws.manager import manager

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe.

    Progress storage needs the database. Redis only carries the cross-instance
    relay and rate limits, so running without it is reported as degraded.
    """
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:  # noqa: BLE001
        checks["database"] = f"error: {exc}"

    redis = get_redis_or_none()
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:  # noqa: BLE001
            checks["redis"] = f"error: {exc}"

    if checks["database"] != "ok":
        status = "unavailable"
    elif checks["redis"] != "ok":
        status = "degraded"
    else:
        status = "ready"

    return {
        "status": status,
        "checks": checks,
        "relay": "redis" if checks["redis"] == "ok" else "local",
        "websocket": manager.get_stats(),
    }


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
