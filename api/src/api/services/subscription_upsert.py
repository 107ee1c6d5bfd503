"""Idempotent create-or-update of an account's subscription row."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.models import Subscription
from twinmind.schemas.billing import ProviderSubscription, customer_id_of

from api.services.errors import InvalidArgument, SubscriptionUpsertError
from api.services.stripe_subscription import (
    PlanStatus,
    format_timestamp,
    normalize_status,
    normalize_timestamp,
    parse_timestamp,
    resolve_plan_status,
    resolve_subscription_period_end,
    serialize_cancellation_details,
)

logger = logging.getLogger(__name__)

PROVIDER = "stripe"
PRO_PLAN_CODE = "pro"
FREE_PLAN_CODE = "free"

_TIMESTAMP_FIELDS = ("current_period_end", "cancel_at", "canceled_at", "updated_at")


@dataclass(frozen=True)
class SubscriptionUpsertResult:
    plan_status: PlanStatus
    plan_code: str
    provider_status: str | None
    provider_customer_id: str | None
    provider_subscription_id: str
    current_period_end: str | None
    cancel_at: str | None
    canceled_at: str | None
    cancel_at_period_end: bool | None


def resolve_plan_code(plan_status: PlanStatus, subscription: ProviderSubscription) -> str:
    for item in subscription.items:
        if item.price is None:
            continue
        metadata_plan_code = item.price.metadata.get("plan_code")
        if isinstance(metadata_plan_code, str) and metadata_plan_code.strip():
            return metadata_plan_code.strip()

    if plan_status in ("pro", "cancelled"):
        return PRO_PLAN_CODE
    return FREE_PLAN_CODE


def build_subscription_payload(
    account_id: str,
    subscription: ProviderSubscription,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Full subscription row for ``account_id``, timestamps as ISO strings."""
    current = now or datetime.now(UTC)
    current_period_end = resolve_subscription_period_end(subscription)
    provider_status = normalize_status(subscription.status)
    plan_status = resolve_plan_status(provider_status, current_period_end, now=current)
    plan_code = resolve_plan_code(plan_status, subscription)
    cancel_at_period_end = subscription.cancel_at_period_end
    return {
        "account_id": account_id,
        "plan_code": plan_code,
        "status": plan_status,
        "provider": PROVIDER,
        "provider_customer_id": customer_id_of(subscription.customer),
        "provider_subscription_id": subscription.id,
        "current_period_end": current_period_end,
        "cancel_at": normalize_timestamp(subscription.cancel_at),
        "canceled_at": normalize_timestamp(subscription.canceled_at),
        "cancel_at_period_end": (
            cancel_at_period_end if isinstance(cancel_at_period_end, bool) else None
        ),
        "cancellation_details": serialize_cancellation_details(
            subscription.cancellation_details
        ),
        "updated_at": format_timestamp(current),
    }


def _row_values(payload: dict[str, Any]) -> dict[str, Any]:
    values = dict(payload)
    values["account_id"] = uuid.UUID(str(payload["account_id"]))
    for field in _TIMESTAMP_FIELDS:
        values[field] = parse_timestamp(payload[field])
    return values


def build_upsert_statement(values: dict[str, Any]):
    stmt = pg_insert(Subscription).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[Subscription.account_id],
        set_={key: stmt.excluded[key] for key in values if key != "account_id"},
    )


async def upsert_subscription_for_account(
    db: AsyncSession,
    account_id: str,
    subscription: ProviderSubscription,
) -> SubscriptionUpsertResult:
    """Write the canonical subscription row for ``account_id``.

    Exactly one statement is issued: ``INSERT ... ON CONFLICT (account_id)
    DO UPDATE``. Concurrent calls for the same account are arbitrated by the
    unique constraint; the last writer wins on the whole row.
    """
    account_id = str(account_id or "").strip()
    if not account_id:
        raise InvalidArgument("An account_id is required to upsert a subscription.")
    if subscription is None or not subscription.id:
        raise InvalidArgument("A valid Stripe subscription is required to upsert a subscription.")

    payload = build_subscription_payload(account_id, subscription)
    try:
        values = _row_values(payload)
    except ValueError:
        raise InvalidArgument(f"Invalid account_id: {account_id}")

    try:
        await db.execute(build_upsert_statement(values))
        await db.flush()
    except SQLAlchemyError as exc:
        logger.warning("Subscription upsert failed for account %s: %s", account_id, exc)
        raise SubscriptionUpsertError(account_id, str(getattr(exc, "orig", None) or exc)) from exc

    return SubscriptionUpsertResult(
        plan_status=payload["status"],
        plan_code=payload["plan_code"],
        provider_status=normalize_status(subscription.status),
        provider_customer_id=payload["provider_customer_id"],
        provider_subscription_id=subscription.id,
        current_period_end=payload["current_period_end"],
        cancel_at=payload["cancel_at"],
        canceled_at=payload["canceled_at"],
        cancel_at_period_end=payload["cancel_at_period_end"],
    )
