"""Workspace membership and subscription lookups."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.config import Settings
from twinmind.models import AccountMember, ClientMember, Subscription

from api.services.errors import BillingError
from api.services.stripe_service import retrieve_subscription
from api.services.stripe_subscription import (
    format_timestamp,
    has_active_plan,
    normalize_plan_status,
)
from api.services.subscription_upsert import upsert_subscription_for_account

logger = logging.getLogger(__name__)


async def get_primary_account_id(db: AsyncSession, profile_id: uuid.UUID | str) -> str | None:
    """Account of the profile's oldest membership, if any."""
    result = await db.execute(
        select(AccountMember.account_id)
        .where(AccountMember.profile_id == profile_id)
        .order_by(AccountMember.created_at.asc())
        .limit(1)
    )
    account_id = result.scalars().first()
    return str(account_id) if account_id else None


async def get_client_memberships(db: AsyncSession, profile_id: uuid.UUID | str) -> list[str]:
    result = await db.execute(
        select(ClientMember.client_id).where(ClientMember.profile_id == profile_id)
    )
    return [str(client_id) for client_id in result.scalars().all() if client_id]


async def get_workspace_subscription(
    db: AsyncSession,
    account_id: uuid.UUID | str,
    *,
    refresh: bool = False,
) -> Subscription | None:
    stmt = select(Subscription).where(Subscription.account_id == account_id).limit(1)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalars().first()


async def sync_workspace_subscription(
    db: AsyncSession,
    settings: Settings,
    account_id: str,
) -> Subscription | None:
    """Refresh the stored subscription from Stripe, best effort.

    Failures are logged and the stored row is returned unchanged.
    """
    subscription = await get_workspace_subscription(db, account_id)
    if subscription is None or not subscription.provider_subscription_id:
        return subscription

    try:
        stripe_sub = retrieve_subscription(settings, subscription.provider_subscription_id)
        await upsert_subscription_for_account(db, account_id, stripe_sub)
    except (BillingError, RuntimeError) as exc:
        logger.warning("Subscription sync skipped for account %s: %s", account_id, exc)
        return subscription
    except Exception as exc:
        logger.warning(
            "Subscription sync failed for %s: %s", subscription.provider_subscription_id, exc
        )
        return subscription

    return await get_workspace_subscription(db, account_id, refresh=True)


def serialize_subscription(subscription: Subscription | None) -> dict[str, Any] | None:
    if subscription is None:
        return None
    return {
        "id": str(subscription.id),
        "account_id": str(subscription.account_id),
        "plan_code": subscription.plan_code,
        "status": normalize_plan_status(subscription.status),
        "provider": subscription.provider,
        "provider_customer_id": subscription.provider_customer_id,
        "provider_subscription_id": subscription.provider_subscription_id,
        "current_period_end": format_timestamp(subscription.current_period_end),
        "cancel_at": format_timestamp(subscription.cancel_at),
        "canceled_at": format_timestamp(subscription.canceled_at),
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "cancellation_details": subscription.cancellation_details,
        "has_active_plan": has_active_plan(subscription.status),
        "updated_at": format_timestamp(subscription.updated_at),
    }
