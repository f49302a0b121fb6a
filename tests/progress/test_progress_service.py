"""Progress service tests against a real (SQLite) session."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from watchtime.db.models import VideoProgress
from watchtime.progress.intervals import Interval
from watchtime.progress.repository import create_progress, get_progress
from watchtime.progress.service import ProgressService, ProgressStorageError


async def _row_count(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(VideoProgress.id)))
    return result.scalar() or 0


class TestFetch:
    @pytest.mark.asyncio
    async def test_creates_empty_record(self, db_session: AsyncSession):
        row = await ProgressService(db_session).fetch("u1", "v1")
        assert row.user_id == "u1"
        assert row.video_id == "v1"
        assert row.intervals == []
        assert row.total_watched == 0
        assert row.last_position == 0
        assert row.video_duration == 0
        assert row.is_completed is False

    @pytest.mark.asyncio
    async def test_idempotent(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        first = await svc.fetch("u1", "v1")
        second = await svc.fetch("u1", "v1")
        assert first.id == second.id
        assert await _row_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_keys_are_per_user_and_video(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.fetch("u1", "v1")
        await svc.fetch("u1", "v2")
        await svc.fetch("u2", "v1")
        assert await _row_count(db_session) == 3


class TestApplyInterval:
    @pytest.mark.asyncio
    async def test_first_interval_creates_and_merges(self, db_session: AsyncSession):
        result = await ProgressService(db_session).apply_interval(
            "u1", "v1", Interval(0, 10), current_position=10, video_duration=100
        )
        assert result.accepted is True
        assert result.record.intervals == [[0, 10]]
        assert result.record.total_watched == 10
        assert result.record.last_position == 10
        assert result.record.last_watched_at is not None

    @pytest.mark.asyncio
    async def test_duration_seeded_from_interval_end(self, db_session: AsyncSession):
        result = await ProgressService(db_session).apply_interval("u1", "v1", Interval(0, 30), current_position=30)
        assert result.record.video_duration == 30

    @pytest.mark.asyncio
    async def test_duration_seeded_after_fetch(self, db_session: AsyncSession):
        """A record created by a read still learns its duration on the first submit."""
        svc = ProgressService(db_session)
        await svc.fetch("u1", "v1")
        result = await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10)
        assert result.accepted is True
        assert result.record.video_duration == 10

    @pytest.mark.asyncio
    async def test_larger_reported_duration_replaces_learned_one(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        first = await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10)
        assert first.record.duration_reported is False
        result = await svc.apply_interval("u1", "v1", Interval(10, 20), current_position=20, video_duration=200)
        assert result.accepted is True
        assert result.record.video_duration == 200
        assert result.record.duration_reported is True
        # Completion derived against the learned duration is kept
        assert result.record.is_completed is True

    @pytest.mark.asyncio
    async def test_reported_duration_is_not_replaced(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10, video_duration=100)
        result = await svc.apply_interval("u1", "v1", Interval(10, 20), current_position=20, video_duration=500)
        assert result.accepted is True
        assert result.record.video_duration == 100

    @pytest.mark.asyncio
    async def test_rejected_interval_does_not_adopt_duration(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10)
        result = await svc.apply_interval("u1", "v1", Interval(50, 60), current_position=60, video_duration=1000)
        assert result.accepted is False
        assert result.record.video_duration == 10
        assert result.record.duration_reported is False

    @pytest.mark.asyncio
    async def test_rejected_interval_keeps_completion(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        done = await svc.apply_interval("u1", "v1", Interval(0, 96), current_position=96, video_duration=100)
        assert done.record.is_completed is True

        result = await svc.apply_interval(
            "u1", "v1", Interval(500, 510), current_position=510, video_duration=1000
        )
        assert result.accepted is False
        assert result.record.is_completed is True
        assert result.record.video_duration == 100
        assert result.record.intervals == [[0, 96]]
        assert result.record.last_position == 96

        row = await get_progress(db_session, "u1", "v1")
        assert row is not None
        assert row.is_completed is True
        assert row.video_duration == 100

    @pytest.mark.asyncio
    async def test_overlapping_interval_extends_coverage(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10, video_duration=100)
        result = await svc.apply_interval("u1", "v1", Interval(9, 20), current_position=20)
        assert result.accepted is True
        assert result.record.intervals == [[0, 20]]
        assert result.record.total_watched == 20

    @pytest.mark.asyncio
    async def test_rejected_interval_leaves_record_unchanged(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10, video_duration=100)
        result = await svc.apply_interval("u1", "v1", Interval(50, 60), current_position=60)
        assert result.accepted is False
        assert result.record.intervals == [[0, 10]]
        assert result.record.total_watched == 10
        assert result.record.last_position == 10

    @pytest.mark.asyncio
    async def test_rejected_first_interval_still_persists_record(self, db_session: AsyncSession):
        result = await ProgressService(db_session).apply_interval("u1", "v1", Interval(10, 5), current_position=5)
        assert result.accepted is False
        row = await get_progress(db_session, "u1", "v1")
        assert row is not None
        assert row.intervals == []
        assert row.video_duration == 0

    @pytest.mark.asyncio
    async def test_completion_persisted(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        position = 0.0
        for start in range(0, 100, 10):
            result = await svc.apply_interval(
                "u1", "v1", Interval(start, start + 10), current_position=start + 10, video_duration=100
            )
            assert result.accepted is True
            position = start + 10
        row = await get_progress(db_session, "u1", "v1")
        assert row is not None
        assert row.total_watched == 100
        assert row.is_completed is True
        assert row.last_position == position


class TestReset:
    @pytest.mark.asyncio
    async def test_deletes_record(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10)
        assert await svc.reset("u1", "v1") is True
        assert await get_progress(db_session, "u1", "v1") is None

    @pytest.mark.asyncio
    async def test_missing_record_is_not_an_error(self, db_session: AsyncSession):
        assert await ProgressService(db_session).reset("nobody", "v1") is False

    @pytest.mark.asyncio
    async def test_only_target_key_deleted(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.fetch("u1", "v1")
        await svc.fetch("u1", "v2")
        await svc.reset("u1", "v1")
        assert await get_progress(db_session, "u1", "v2") is not None

    @pytest.mark.asyncio
    async def test_fetch_after_reset_starts_fresh(self, db_session: AsyncSession):
        svc = ProgressService(db_session)
        await svc.apply_interval("u1", "v1", Interval(0, 10), current_position=10)
        await svc.reset("u1", "v1")
        row = await svc.fetch("u1", "v1")
        assert row.intervals == []
        assert row.total_watched == 0


class TestUniqueness:
    @pytest.mark.asyncio
    async def test_duplicate_create_returns_existing(self, db_session: AsyncSession):
        first = await create_progress(db_session, "u1", "v1")
        await db_session.commit()
        second = await create_progress(db_session, "u1", "v1")
        assert second.id == first.id
        assert await _row_count(db_session) == 1


class TestStorageFailure:
    @pytest.mark.asyncio
    async def test_failure_raises_storage_error_and_rolls_back(self):
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        with pytest.raises(ProgressStorageError) as excinfo:
            await ProgressService(db).apply_interval("u1", "v1", Interval(0, 10), current_position=10)
        assert excinfo.value.operation == "apply_interval"
        db.rollback.assert_awaited_once()
