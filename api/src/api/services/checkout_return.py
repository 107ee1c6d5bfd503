"""Reconciliation of a completed Stripe checkout with the workspace subscription."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.config import Settings
from twinmind.models import Profile
from twinmind.schemas.billing import ProviderCheckoutSession, ProviderSubscription

from api.services.errors import (
    MissingSubscriptionReference,
    NoWorkspaceMembership,
    Unauthenticated,
)
from api.services.stripe_service import retrieve_subscription
from api.services.subscription_upsert import (
    SubscriptionUpsertResult,
    upsert_subscription_for_account,
)
from api.services.workspace_service import get_primary_account_id

COMPLETE_SESSION_STATUS = "complete"


def resolve_checkout_subscription(
    settings: Settings,
    session: ProviderCheckoutSession,
) -> ProviderSubscription:
    """Expanded subscription from the session, fetched by id when not expanded."""
    if isinstance(session.subscription, ProviderSubscription):
        return session.subscription
    if isinstance(session.subscription, str) and session.subscription:
        return retrieve_subscription(settings, session.subscription)
    raise MissingSubscriptionReference(session.id)


async def reconcile_checkout_session(
    db: AsyncSession,
    settings: Settings,
    session: ProviderCheckoutSession,
    profile: Profile | None,
) -> SubscriptionUpsertResult:
    subscription = resolve_checkout_subscription(settings, session)

    if profile is None:
        raise Unauthenticated("Unable to determine the authenticated user.")

    account_id = await get_primary_account_id(db, profile.id)
    if not account_id:
        raise NoWorkspaceMembership(str(profile.id))

    return await upsert_subscription_for_account(db, account_id, subscription)
