"""Create subscriptions table.

Revision ID: 003_subscriptions
Revises: 002_client_workspace
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

revision: str = "003_subscriptions"
down_revision: str | None = "002_client_workspace"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "subscriptions",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True
        ),
        sa.Column(
            "account_id",
            UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("plan_code", sa.Text(), nullable=False, server_default=sa.text("'free'")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'free'")),
        sa.Column("provider", sa.Text(), nullable=False, server_default=sa.text("'stripe'")),
        sa.Column("provider_customer_id", sa.Text(), nullable=True),
        sa.Column("provider_subscription_id", sa.Text(), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=True),
        sa.Column("cancellation_details", JSONB(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint(
            "status IN ('free','pro','cancelled')",
            name="ck_subscription_status",
        ),
    )
    op.create_index(
        "idx_subscriptions_provider_subscription",
        "subscriptions",
        ["provider_subscription_id"],
    )


def downgrade() -> None:
    op.drop_index("idx_subscriptions_provider_subscription", table_name="subscriptions")
    op.drop_table("subscriptions")
