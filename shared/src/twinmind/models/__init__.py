"""SQLAlchemy ORM models for TwinMind."""

from twinmind.models.base import Base
from twinmind.models.profile import Profile
from twinmind.models.account import Account, AccountMember
from twinmind.models.subscription import Subscription
from twinmind.models.client import Client, ClientMember, Contact
from twinmind.models.project import Invoice, Project
from twinmind.models.project_detail import (
    Brief,
    Comment,
    Invite,
    ProjectFile,
    ProjectStageEvent,
)

__all__ = [
    "Base",
    "Profile",
    "Account",
    "AccountMember",
    "Subscription",
    "Client",
    "ClientMember",
    "Contact",
    "Project",
    "Invoice",
    "Brief",
    "Comment",
    "ProjectFile",
    "ProjectStageEvent",
    "Invite",
]
