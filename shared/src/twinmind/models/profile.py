"""User profile model (one row per authenticated user)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from twinmind.models.base import Base

if TYPE_CHECKING:
    from twinmind.models.account import AccountMember

STAFF_ROLES = ("owner", "admin", "staff")
CLIENT_ROLE = "client"


class Profile(Base):
    __tablename__ = "profiles"

    # Matches the auth provider's user id (JWT "sub").
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'client'"))
    full_name: Mapped[str | None] = mapped_column(Text)
    company: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    timezone: Mapped[str | None] = mapped_column(Text)
    gdpr_consent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    memberships: Mapped[list[AccountMember]] = relationship(
        back_populates="profile", lazy="noload"
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('owner','admin','staff','client')",
            name="ck_profile_role",
        ),
    )
