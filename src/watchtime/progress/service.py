"""Progress record service: one record per (user_id, video_id), fetch / apply / reset."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NoReturn

import structlog
from sqlalchemy.exc import SQLAlchemyError

from watchtime.progress.intervals import Interval, WatchState
from watchtime.progress.repository import (
    create_progress,
    delete_progress,
    get_progress,
    save_state,
    to_state,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from watchtime.db.models import VideoProgress

logger = structlog.get_logger()


class ProgressStorageError(Exception):
    """The progress store failed; the request's unit of work was rolled back."""

    def __init__(self, operation: str, user_id: str, video_id: str) -> None:
        super().__init__(f"{operation} failed for user={user_id} video={video_id}")
        self.operation = operation
        self.user_id = user_id
        self.video_id = video_id


@dataclass
class ProgressResult:
    record: VideoProgress
    accepted: bool


def _adopt_duration(state: WatchState, interval: Interval, reported: float | None) -> None:
    """Apply the duration that should judge ``interval``.

    A reported duration sets an unknown one and replaces a learned lower bound
    when larger. Once a duration has been reported, later reports are ignored.
    With nothing reported, an unknown duration is learned from ``interval.end``.
    """
    if reported is not None and not state.duration_reported:
        if state.video_duration <= 0 or reported > state.video_duration:
            state.video_duration = reported
            state.duration_reported = True
            return
    if state.video_duration <= 0 and interval.end > 0:
        state.video_duration = interval.end


class ProgressService:
    """Owns the lifecycle of progress rows. Each public method commits its own unit of work."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_or_create(self, user_id: str, video_id: str) -> tuple[VideoProgress, bool]:
        row = await get_progress(self.db, user_id, video_id)
        if row is not None:
            return row, False
        return await create_progress(self.db, user_id, video_id), True

    async def fetch(self, user_id: str, video_id: str) -> VideoProgress:
        """Return the record for this key, creating an empty one on first access."""
        try:
            row, created = await self._get_or_create(user_id, video_id)
            if created:
                await self.db.commit()
        except SQLAlchemyError as exc:
            await self._fail("fetch", user_id, video_id, exc)
        return row

    async def apply_interval(
        self,
        user_id: str,
        video_id: str,
        interval: Interval,
        current_position: float,
        video_duration: float | None = None,
    ) -> ProgressResult:
        """Run a reported interval through the acceptance rules and persist the record.

        The record always exists afterwards, but only an accepted interval changes
        it. Duration updates ride along with the interval and are dropped with it
        on rejection.
        """
        try:
            row, _ = await self._get_or_create(user_id, video_id)
            state = to_state(row)
            _adopt_duration(state, interval, video_duration)

            reason = state.rejection_reason(interval.start, interval.end)
            accepted = reason is None and state.add_interval(interval.start, interval.end, current_position)

            if accepted:
                await save_state(self.db, row, state)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self._fail("apply_interval", user_id, video_id, exc)

        if accepted:
            logger.info(
                "interval_accepted",
                user_id=user_id,
                video_id=video_id,
                start=interval.start,
                end=interval.end,
                total_watched=state.total_watched,
                is_completed=state.is_completed,
            )
        else:
            logger.info(
                "interval_rejected",
                user_id=user_id,
                video_id=video_id,
                start=interval.start,
                end=interval.end,
                reason=reason,
            )
        return ProgressResult(record=row, accepted=accepted)

    async def reset(self, user_id: str, video_id: str) -> bool:
        """Delete the record for this key. A missing record is not an error."""
        try:
            deleted = await delete_progress(self.db, user_id, video_id)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self._fail("reset", user_id, video_id, exc)
        logger.info("progress_reset", user_id=user_id, video_id=video_id, existed=deleted)
        return deleted

    async def _fail(self, operation: str, user_id: str, video_id: str, exc: SQLAlchemyError) -> NoReturn:
        logger.error(
            "progress_storage_failed",
            operation=operation,
            user_id=user_id,
            video_id=video_id,
            error=str(exc),
            exc_info=exc,
        )
        await self.db.rollback()
        raise ProgressStorageError(operation, user_id, video_id) from exc
