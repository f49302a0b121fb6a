"""Track whether a video's duration was reported by the player.

Rows predating this column keep a duration that may have been learned from
an interval end, so they default to not reported.

Revision ID: 002_duration_reported
Revises: 001_video_progress
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_duration_reported"
down_revision: str | None = "001_video_progress"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        ALTER TABLE video_progress
        ADD COLUMN IF NOT EXISTS duration_reported BOOLEAN NOT NULL DEFAULT false
    """)


def downgrade() -> None:
    op.execute("ALTER TABLE video_progress DROP COLUMN IF EXISTS duration_reported")
