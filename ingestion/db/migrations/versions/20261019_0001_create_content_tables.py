"""Create platforms, platform_auths, contents, reply_templates and job_runs tables"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "platforms",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("icon_url", sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("slug", name="uq_platforms_slug"),
    )

    op.create_table(
        "platform_auths",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("platform_id", sa.Uuid(), sa.ForeignKey("platforms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="unauthed"),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("authorized_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("platform_id", name="uq_platform_auths_platform"),
    )

    op.create_table(
        "contents",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("platform_id", sa.Uuid(), sa.ForeignKey("platforms.id"), nullable=False),
        sa.Column("content_type", sa.String(length=16), nullable=False, server_default="post"),
        sa.Column("platform_content_id", sa.String(length=128), nullable=True),
        sa.Column("author_name", sa.String(length=256), nullable=False),
        sa.Column("author_id", sa.String(length=128), nullable=True),
        sa.Column("author_avatar", sa.String(length=1024), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("body_md5", sa.String(length=32), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_url", sa.String(length=2048), nullable=False),
        sa.Column("keyword_tags", sa.JSON(), nullable=False),
        sa.Column("like_count", sa.Integer(), nullable=True),
        sa.Column("comment_count", sa.Integer(), nullable=True),
        sa.Column("replied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("replied_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    # NULL platform_content_id values never collide, so url-only rows rely on the second index.
    op.create_index(
        "uq_contents_platform_content_id",
        "contents",
        ["platform_id", "platform_content_id"],
        unique=True,
    )
    op.create_index(
        "uq_contents_platform_source_url",
        "contents",
        ["platform_id", "source_url"],
        unique=True,
    )
    op.create_index("ix_contents_published", "contents", ["published_at"], unique=False)

    op.create_table(
        "reply_templates",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=128), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("stage", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("keyword", sa.String(length=128), nullable=True),
        sa.Column("platform", sa.String(length=64), nullable=True),
        sa.Column("task_name", sa.String(length=100), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("items_seen", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_written", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.String(length=512), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_job_runs_stage_status", "job_runs", ["stage", "status"], unique=False)
    op.create_index("ix_job_runs_trace", "job_runs", ["trace_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_job_runs_trace", table_name="job_runs")
    op.drop_index("ix_job_runs_stage_status", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_table("reply_templates")
    op.drop_index("ix_contents_published", table_name="contents")
    op.drop_index("uq_contents_platform_source_url", table_name="contents")
    op.drop_index("uq_contents_platform_content_id", table_name="contents")
    op.drop_table("contents")
    op.drop_table("platform_auths")
    op.drop_table("platforms")
