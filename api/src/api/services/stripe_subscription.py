"""Normalization of Stripe subscription data into canonical plan state."""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from typing import Any, Literal

from twinmind.schemas.billing import ProviderSubscription

PlanStatus = Literal["free", "pro", "cancelled"]

ACTIVE_PROVIDER_STATUSES = frozenset({"active", "trialing", "past_due"})
CANCELED_PROVIDER_STATUS = "canceled"


def normalize_timestamp(timestamp: Any) -> str | None:
    """Convert Unix epoch seconds to an ISO-8601 string (ms precision, UTC)."""
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    if isinstance(timestamp, float) and not math.isfinite(timestamp):
        return None
    try:
        value = datetime.fromtimestamp(timestamp, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    """Render a stored timestamp the same way ``normalize_timestamp`` does."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_status(status: Any) -> str | None:
    if not isinstance(status, str):
        return None
    normalized = status.strip().lower()
    return normalized or None


def normalize_plan_status(status: Any) -> PlanStatus:
    """Coerce a stored plan status onto the canonical three values."""
    normalized = normalize_status(status)
    if normalized == "pro":
        return "pro"
    if normalized in ("cancelled", "canceled"):
        return "cancelled"
    return "free"


def resolve_plan_status(
    provider_status: Any,
    current_period_end: str | None,
    now: datetime | None = None,
) -> PlanStatus:
    """Map a provider subscription status onto the canonical plan status.

    A canceled subscription keeps its entitlement (``cancelled``) until the
    current period ends; after that, or with no known period end, it is
    ``free``.
    """
    normalized = normalize_status(provider_status)

    if normalized in ACTIVE_PROVIDER_STATUSES:
        return "pro"

    if normalized == CANCELED_PROVIDER_STATUS:
        period_end = parse_timestamp(current_period_end)
        current = now or datetime.now(UTC)
        if period_end is not None and period_end > current:
            return "cancelled"
        return "free"

    return "free"


def has_active_plan(plan_status: Any) -> bool:
    return normalize_plan_status(plan_status) in ("pro", "cancelled")


def _is_epoch(value: Any) -> bool:
    return normalize_timestamp(value) is not None


def resolve_subscription_period_end(subscription: ProviderSubscription | None) -> str | None:
    """Current period end, from the subscription or its latest line item.

    Newer Stripe API versions only report ``current_period_end`` per item.
    """
    if subscription is None:
        return None

    if _is_epoch(subscription.current_period_end):
        return normalize_timestamp(subscription.current_period_end)

    latest: int | float | None = None
    for item in subscription.items:
        if not _is_epoch(item.current_period_end):
            continue
        if latest is None or item.current_period_end > latest:
            latest = item.current_period_end
    return normalize_timestamp(latest)


def serialize_cancellation_details(details: dict[str, Any] | None) -> dict[str, Any] | None:
    """Deep, JSON-compatible copy of the provider's cancellation metadata."""
    if not details:
        return None
    return json.loads(json.dumps(details, default=str))
