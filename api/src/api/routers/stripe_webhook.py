"""Stripe webhook handler."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.config import Settings
from twinmind.models import Subscription
from twinmind.schemas.billing import ProviderSubscription, as_dict

from api.dependencies import get_app_settings, get_db
from api.services.stripe_service import verify_webhook_signature
from api.services.subscription_upsert import upsert_subscription_for_account

logger = logging.getLogger(__name__)
router = APIRouter()

SUBSCRIPTION_EVENTS = (
    "customer.subscription.updated",
    "customer.subscription.deleted",
)


async def _sync_subscription_event(db: AsyncSession, data: dict) -> None:
    """Re-run the canonical upsert for the account that owns the subscription."""
    subscription = ProviderSubscription.from_provider(data)
    result = await db.execute(
        select(Subscription).where(Subscription.provider_subscription_id == subscription.id)
    )
    row = result.scalars().first()
    if row is None:
        logger.warning("Stripe webhook for unknown subscription %s ignored", subscription.id)
        return
    await upsert_subscription_for_account(db, str(row.account_id), subscription)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "").strip()
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    try:
        event = as_dict(verify_webhook_signature(settings, payload, sig_header))
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except Exception as exc:
        logger.warning("Stripe webhook signature verification failed: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = str(event.get("type", "")).strip()
    event_data = event.get("data")
    data = as_dict(event_data).get("object") if event_data is not None else None
    if not event_type or data is None:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    logger.info("Stripe webhook: %s", event_type)

    if event_type in SUBSCRIPTION_EVENTS:
        try:
            await _sync_subscription_event(db, as_dict(data))
        except Exception as exc:
            logger.error("Stripe webhook %s processing failed: %s", event_type, exc)
            raise HTTPException(status_code=500, detail="Webhook processing failed")

    return {"received": True}
