"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Moderation queue
    op.create_table(
        "food_submissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("external_id", sa.String(14), nullable=False),
        sa.Column("user_id", sa.String(64)),
        sa.Column("brand", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("protein", sa.Float(), server_default="0"),
        sa.Column("fat", sa.Float(), server_default="0"),
        sa.Column("crude_fiber", sa.Float(), server_default="0"),
        sa.Column("ash", sa.Float(), server_default="0"),
        sa.Column("moisture", sa.Float(), server_default="0"),
        sa.Column("additives", sa.Text()),
        sa.Column("image_url", sa.String(500)),
        sa.Column("source_url", sa.Text()),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("crawl_session_id", sa.String(36)),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_food_submissions_external_id", "food_submissions", ["external_id"])
    op.create_index("ix_food_submissions_brand", "food_submissions", ["brand"])
    op.create_index("ix_food_submissions_status", "food_submissions", ["status"])
    op.create_index("ix_food_submissions_source", "food_submissions", ["source"])
    op.create_index(
        "ix_food_submissions_crawl_session_id", "food_submissions", ["crawl_session_id"]
    )
    op.create_index("ix_food_submissions_submitted_at", "food_submissions", ["submitted_at"])

    # Crawl cursor singleton
    op.create_table(
        "crawl_state",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("active_source", sa.String(50), nullable=False),
        sa.Column("source_cursor", JSONB()),
        sa.Column("last_seen_external_id", sa.Text()),
        sa.Column("last_seen_url", sa.Text()),
        sa.Column("total_processed", sa.Integer(), server_default="0"),
        sa.Column("last_run_at", sa.DateTime(timezone=True)),
        sa.Column("last_error", sa.Text()),
        sa.Column("last_error_at", sa.DateTime(timezone=True)),
        sa.Column("statistics", sa.Text()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("crawl_state")
    op.drop_table("food_submissions")
