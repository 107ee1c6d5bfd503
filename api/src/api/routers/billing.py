"""Workspace billing endpoints: checkout, billing portal, subscription status."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.config import Settings
from twinmind.models import Profile

from api.dependencies import get_app_settings, get_current_profile, get_db
from api.services.stripe_service import (
    create_billing_portal_session,
    create_embedded_checkout_session,
)
from api.services.workspace_service import (
    get_primary_account_id,
    get_workspace_subscription,
    serialize_subscription,
    sync_workspace_subscription,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_origin(request: Request) -> str:
    origin = request.headers.get("origin", "").strip().rstrip("/")
    if not origin:
        raise HTTPException(status_code=400, detail="Missing origin header in request")
    return origin


async def _require_account_id(db: AsyncSession, profile: Profile) -> str:
    try:
        account_id = await get_primary_account_id(db, profile.id)
    except Exception as exc:
        logger.error("Workspace membership lookup failed for %s: %s", profile.id, exc)
        raise HTTPException(status_code=500, detail="Unable to load workspace membership.")
    if not account_id:
        raise HTTPException(status_code=404, detail="Workspace membership not found.")
    return account_id


@router.post("/portal")
async def create_portal(
    request: Request,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Create a Stripe Billing Portal session for the caller's workspace."""
    origin = _require_origin(request)
    account_id = await _require_account_id(db, profile)

    try:
        subscription = await get_workspace_subscription(db, account_id)
    except Exception as exc:
        logger.error("Billing portal subscription lookup failed for %s: %s", account_id, exc)
        raise HTTPException(status_code=500, detail="Unable to load workspace subscription.")

    customer_id = subscription.provider_customer_id if subscription else None
    if not customer_id:
        raise HTTPException(
            status_code=404,
            detail="The workspace subscription is missing a billing customer.",
        )

    try:
        url = create_billing_portal_session(
            settings,
            customer_id=customer_id,
            return_url=f"{origin}{settings.billing_path}",
        )
    except Exception as exc:
        logger.error("Billing portal session failed for account %s: %s", account_id, exc)
        raise HTTPException(status_code=502, detail="Unable to create billing portal session.")
    return {"url": url}


@router.post("/checkout")
async def create_checkout(
    request: Request,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Create an embedded Stripe Checkout session, return its client secret."""
    if not settings.stripe_price_id:
        raise HTTPException(status_code=501, detail="Stripe price is not configured")

    origin = _require_origin(request)
    account_id = await _require_account_id(db, profile)
    subscription = await get_workspace_subscription(db, account_id)

    try:
        client_secret = create_embedded_checkout_session(
            settings,
            account_id=account_id,
            customer_id=subscription.provider_customer_id if subscription else None,
            return_url=f"{origin}/return?session_id={{CHECKOUT_SESSION_ID}}",
        )
    except Exception as exc:
        logger.error("Checkout session failed for account %s: %s", account_id, exc)
        raise HTTPException(status_code=502, detail="Unable to create checkout session.")
    return {
        "client_secret": client_secret,
        "publishable_key": settings.stripe_publishable_key or None,
    }


@router.get("/subscription")
async def get_subscription_status(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Current workspace subscription, refreshed from Stripe when possible."""
    account_id = await _require_account_id(db, profile)
    subscription = await sync_workspace_subscription(db, settings, account_id)
    return {"account_id": account_id, "subscription": serialize_subscription(subscription)}
