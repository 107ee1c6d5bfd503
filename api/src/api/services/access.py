"""Per-request access context for workspace data."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from twinmind.models.profile import CLIENT_ROLE, STAFF_ROLES


@dataclass(frozen=True)
class AccessContext:
    profile_id: uuid.UUID
    role: str
    client_ids: list[str] = field(default_factory=list)
    account_id: str | None = None

    @property
    def is_client(self) -> bool:
        return self.role == CLIENT_ROLE

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
