"""Create clients, client_members, contacts, projects and invoices tables.

Revision ID: 002_client_workspace
Revises: 001_profiles_accounts
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, UUID

from alembic import op

revision: str = "002_client_workspace"
down_revision: str | None = "001_profiles_accounts"
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


def upgrade() -> None:
    op.create_table(
        "clients",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("account_status", sa.Text(), nullable=True, server_default=sa.text("'active'")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "client_members",
        _id(),
        _fk("client_id", "clients.id"),
        _fk("profile_id", "profiles.id"),
        sa.Column("role", sa.Text(), nullable=True, server_default=sa.text("'client'")),
        _timestamp("created_at"),
    )
    op.create_index("idx_client_members_profile", "client_members", ["profile_id"])

    op.create_table(
        "contacts",
        _id(),
        _fk("client_id", "clients.id"),
        _fk("profile_id", "profiles.id", ondelete="SET NULL", nullable=True),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column("gdpr_consent", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_contacts_client", "contacts", ["client_id"])

    op.create_table(
        "projects",
        _id(),
        _fk("client_id", "clients.id"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'Backlog'")),
        sa.Column("priority", sa.Text(), nullable=True, server_default=sa.text("'medium'")),
        sa.Column("value_quote", sa.Numeric(), nullable=True),
        sa.Column("value_invoiced", sa.Numeric(), nullable=True),
        sa.Column("value_paid", sa.Numeric(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        _fk("assignee_profile_id", "profiles.id", ondelete="SET NULL", nullable=True),
        sa.Column("labels", ARRAY(sa.Text()), nullable=True),
        sa.Column("tags", ARRAY(sa.Text()), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_projects_client", "projects", ["client_id"])
    op.create_index("idx_projects_status", "projects", ["status", "updated_at"])

    op.create_table(
        "invoices",
        _id(),
        _fk("project_id", "projects.id"),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'Quote'")),
        sa.Column("amount", sa.Numeric(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default=sa.text("'EUR'")),
        sa.Column(
            "issued_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("NOW()")
        ),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("external_url", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_invoices_project", "invoices", ["project_id"])


def downgrade() -> None:
    op.drop_index("idx_invoices_project", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("idx_projects_status", table_name="projects")
    op.drop_index("idx_projects_client", table_name="projects")
    op.drop_table("projects")
    op.drop_index("idx_contacts_client", table_name="contacts")
    op.drop_table("contacts")
    op.drop_index("idx_client_members_profile", table_name="client_members")
    op.drop_table("client_members")
    op.drop_table("clients")
