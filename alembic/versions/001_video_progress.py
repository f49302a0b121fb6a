"""Video progress table.

One row per (user_id, video_id) holding merged watched intervals and the
stats derived from them.

Revision ID: 001_video_progress
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_video_progress"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS video_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(128) NOT NULL,
            video_id VARCHAR(128) NOT NULL,
            intervals JSONB NOT NULL DEFAULT '[]',
            last_position DOUBLE PRECISION NOT NULL DEFAULT 0,
            total_watched DOUBLE PRECISION NOT NULL DEFAULT 0,
            video_duration DOUBLE PRECISION NOT NULL DEFAULT 0,
            last_watched_at TIMESTAMPTZ,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_video_progress_user_video UNIQUE (user_id, video_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_video_progress_video
        ON video_progress(video_id)
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_video_progress_video")
    op.execute("DROP TABLE IF EXISTS video_progress")
