"""Persistence for video progress rows, keyed by (user_id, video_id)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from watchtime.db.models import VideoProgress
from watchtime.progress.intervals import Interval, WatchState

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


def to_state(row: VideoProgress) -> WatchState:
    """Build the engine value from a stored row."""
    return WatchState(
        intervals=[Interval(float(start), float(end)) for start, end in row.intervals or []],
        last_position=row.last_position or 0.0,
        total_watched=row.total_watched or 0.0,
        video_duration=row.video_duration or 0.0,
        last_watched_at=row.last_watched_at,
        is_completed=bool(row.is_completed),
        duration_reported=bool(row.duration_reported),
    )


async def get_progress(db: AsyncSession, user_id: str, video_id: str) -> VideoProgress | None:
    result = await db.execute(
        select(VideoProgress).where(
            VideoProgress.user_id == user_id,
            VideoProgress.video_id == video_id,
        )
    )
    return result.scalar_one_or_none()


async def create_progress(
    db: AsyncSession,
    user_id: str,
    video_id: str,
    video_duration: float = 0.0,
) -> VideoProgress:
    """Insert an empty progress row.

    If a concurrent request already created the row for this key, the unique
    constraint fires and the existing row is returned instead.
    """
    row = VideoProgress(
        user_id=user_id,
        video_id=video_id,
        intervals=[],
        last_position=0.0,
        total_watched=0.0,
        video_duration=video_duration,
        is_completed=False,
        duration_reported=False,
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        existing = await get_progress(db, user_id, video_id)
        if existing is None:
            raise
        logger.info("progress_create_raced", user_id=user_id, video_id=video_id)
        return existing

    logger.info("progress_created", user_id=user_id, video_id=video_id, video_duration=video_duration)
    return row


async def save_state(db: AsyncSession, row: VideoProgress, state: WatchState) -> VideoProgress:
    """Write an engine value back onto its row and flush."""
    # New list object so the JSON column registers the change
    row.intervals = [[i.start, i.end] for i in state.intervals]
    row.last_position = state.last_position
    row.total_watched = state.total_watched
    row.video_duration = state.video_duration
    row.last_watched_at = state.last_watched_at
    row.is_completed = state.is_completed
    row.duration_reported = state.duration_reported
    await db.flush()
    return row


async def delete_progress(db: AsyncSession, user_id: str, video_id: str) -> bool:
    """Delete the row for this key. Returns whether one existed."""
    result = await db.execute(
        delete(VideoProgress).where(
            VideoProgress.user_id == user_id,
            VideoProgress.video_id == video_id,
        )
    )
    return bool(result.rowcount)
