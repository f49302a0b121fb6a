"""Progress API endpoints: read, submit, and reset watch progress for a video."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from watchtime.database import get_session
from watchtime.db.models import VideoProgress
from watchtime.dependencies import get_user_id
from watchtime.progress.intervals import Interval
from watchtime.progress.schemas import (
    IntervalResponse,
    ProgressResponse,
    ResetProgressResponse,
    SubmitProgressRequest,
    SubmitProgressResponse,
)
from watchtime.progress.service import ProgressService, ProgressStorageError
from watchtime.ws.relay import publish_progress

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


def _progress_fields(row: VideoProgress) -> dict:
    duration = row.video_duration or 0.0
    percent = round(min(row.total_watched / duration, 1.0) * 100, 2) if duration > 0 else 0.0
    return {
        "user_id": row.user_id,
        "video_id": row.video_id,
        "intervals": [IntervalResponse(start=start, end=end) for start, end in row.intervals or []],
        "last_position": row.last_position,
        "total_watched": row.total_watched,
        "video_duration": duration,
        "last_watched_at": row.last_watched_at,
        "is_completed": row.is_completed,
        "completion_percent": percent,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


@router.get("/{video_id}", response_model=ProgressResponse)
async def get_progress(
    video_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_session),
) -> ProgressResponse:
    """Get progress for a video, creating an empty record on first access."""
    try:
        row = await ProgressService(db).fetch(user_id, video_id)
    except ProgressStorageError:
        raise HTTPException(500, "Failed to fetch progress") from None
    return ProgressResponse(**_progress_fields(row))


@router.post("/{video_id}", response_model=SubmitProgressResponse)
async def submit_progress(
    video_id: str,
    body: SubmitProgressRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_session),
) -> SubmitProgressResponse:
    """Submit a watched interval. A rejected interval is a normal response with ``accepted: false``."""
    interval = Interval(body.interval.start, body.interval.end)
    position = body.last_position if body.last_position is not None else interval.end

    try:
        result = await ProgressService(db).apply_interval(
            user_id,
            video_id,
            interval,
            current_position=position,
            video_duration=body.video_duration,
        )
    except ProgressStorageError:
        raise HTTPException(500, "Failed to update progress") from None

    if result.accepted:
        await publish_progress(
            video_id,
            user_id,
            {
                "position": position,
                "total_watched": result.record.total_watched,
                "is_completed": result.record.is_completed,
            },
            event="progress_saved",
        )

    return SubmitProgressResponse(**_progress_fields(result.record), accepted=result.accepted)


@router.delete("/{video_id}", response_model=ResetProgressResponse)
async def reset_progress(
    video_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_session),
) -> ResetProgressResponse:
    """Delete all progress for a video. Resetting a video with no progress is not an error."""
    try:
        await ProgressService(db).reset(user_id, video_id)
    except ProgressStorageError:
        raise HTTPException(500, "Failed to reset progress") from None
    return ResetProgressResponse(message="Progress reset successfully")
