"""Workspace account and membership models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from twinmind.models.base import Base

if TYPE_CHECKING:
    from twinmind.models.profile import Profile
    from twinmind.models.subscription import Subscription


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    members: Mapped[list[AccountMember]] = relationship(back_populates="account", lazy="noload")
    subscription: Mapped[Subscription | None] = relationship(
        back_populates="account", uselist=False, lazy="noload"
    )


class AccountMember(Base):
    __tablename__ = "account_members"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'member'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    account: Mapped[Account] = relationship(back_populates="members")
    profile: Mapped[Profile] = relationship(back_populates="memberships")

    __table_args__ = (
        CheckConstraint("role IN ('owner','member')", name="ck_account_member_role"),
        Index("idx_account_members_profile", "profile_id", "created_at"),
    )
