"""Create briefs, comments, files, project_stage_events and invites tables.

Revision ID: 004_project_detail
Revises: 003_subscriptions
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

revision: str = "004_project_detail"
down_revision: str | None = "003_subscriptions"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column(
        "id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def _fk(name: str, target: str, *, ondelete: str = "CASCADE", nullable: bool = False):
    return sa.Column(
        name,
        UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _visibility() -> sa.Column:
    return sa.Column("visibility", sa.Text(), nullable=False, server_default=sa.text("'both'"))


def upgrade() -> None:
    op.create_table(
        "briefs",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("answers", JSONB(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_briefs_project", "briefs", ["project_id"])

    op.create_table(
        "comments",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("author_profile_id", "profiles.id"),
        sa.Column("body", sa.Text(), nullable=False),
        _visibility(),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "visibility IN ('owner','client','both')", name="ck_comment_visibility"
        ),
    )
    op.create_index(
        "idx_comments_project", "comments", ["project_id", sa.text("created_at DESC")]
    )

    op.create_table(
        "files",
        _id(),
        _fk("project_id", "projects.id"),
        _fk("uploaded_by_profile_id", "profiles.id"),
        sa.Column("storage_path", sa.Text(), nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("mime", sa.Text(), nullable=True),
        _visibility(),
        _timestamp("created_at"),
        sa.CheckConstraint("visibility IN ('owner','client','both')", name="ck_file_visibility"),
    )
    op.create_index("idx_files_project", "files", ["project_id", sa.text("created_at DESC")])

    op.create_table(
        "project_stage_events",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("from_status", sa.Text(), nullable=True),
        sa.Column("to_status", sa.Text(), nullable=False),
        _fk("changed_by_profile_id", "profiles.id", ondelete="SET NULL", nullable=True),
        _timestamp("changed_at"),
    )
    op.create_index(
        "idx_project_stage_events_project",
        "project_stage_events",
        ["project_id", sa.text("changed_at DESC")],
    )

    op.create_table(
        "invites",
        _id(),
        _fk("client_id", "clients.id"),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("token", sa.Text(), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _fk("accepted_profile_id", "profiles.id", ondelete="SET NULL", nullable=True),
        _timestamp("created_at"),
    )


def downgrade() -> None:
    op.drop_table("invites")
    op.drop_index("idx_project_stage_events_project", table_name="project_stage_events")
    op.drop_table("project_stage_events")
    op.drop_index("idx_files_project", table_name="files")
    op.drop_table("files")
    op.drop_index("idx_comments_project", table_name="comments")
    op.drop_table("comments")
    op.drop_index("idx_briefs_project", table_name="briefs")
    op.drop_table("briefs")
