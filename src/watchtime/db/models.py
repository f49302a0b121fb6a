"""ORM models for watch progress.

The schema is owned by Alembic (``alembic/versions``); these classes mirror it.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from watchtime.db.base import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
IntervalList = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Video progress
# ---------------------------------------------------------------------------


class VideoProgress(Base):
    """One row per (user_id, video_id): merged watched intervals and derived stats."""

    __tablename__ = "video_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_video_progress_user_video"),
        Index("idx_video_progress_video", "video_id"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    video_id: Mapped[str] = mapped_column(String(128), nullable=False)
    intervals: Mapped[list[list[float]]] = mapped_column(IntervalList, nullable=False, default=list)
    last_position: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    total_watched: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    video_duration: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    last_watched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    # False while video_duration is only learned from an interval end
    duration_reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<VideoProgress user={self.user_id!r} video={self.video_id!r} watched={self.total_watched}>"

