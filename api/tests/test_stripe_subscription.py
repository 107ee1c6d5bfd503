"""Tests for Stripe subscription normalization."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from api.services.stripe_subscription import (
    format_timestamp,
    has_active_plan,
    normalize_plan_status,
    normalize_timestamp,
    parse_timestamp,
    resolve_plan_status,
    resolve_subscription_period_end,
    serialize_cancellation_details,
)
from api.services.subscription_upsert import build_subscription_payload
from twinmind.schemas.billing import (
    CustomerId,
    EmbeddedCustomer,
    ProviderCheckoutSession,
    ProviderSubscription,
    customer_id_of,
)

ACCOUNT_ID = "6f1c1c3e-2b1a-4a55-9d8e-0d7d4c8b9a10"


def _epoch(value: datetime) -> int:
    return int(value.timestamp())


def test_normalize_timestamp_renders_millisecond_utc():
    assert normalize_timestamp(1735689600) == "2025-01-01T00:00:00.000Z"
    assert normalize_timestamp(1735689600.5) == "2025-01-01T00:00:00.500Z"


def test_normalize_timestamp_rejects_non_numbers():
    assert normalize_timestamp(None) is None
    assert normalize_timestamp("1735689600") is None
    assert normalize_timestamp(True) is None
    assert normalize_timestamp(float("nan")) is None
    assert normalize_timestamp(float("inf")) is None


@pytest.mark.parametrize(
    "epoch", [-86400.25, -1.5, 0, 1.5, 1735689600.125, 4102444800]
)
def test_normalized_timestamp_parses_back_to_same_instant(epoch):
    normalized = normalize_timestamp(epoch)

    assert normalized.endswith("Z")
    assert parse_timestamp(normalized).timestamp() == pytest.approx(epoch, abs=1e-3)


@pytest.mark.parametrize("status", ["active", "trialing", "past_due"])
@pytest.mark.parametrize("days", [-30, 30])
def test_active_statuses_ignore_period_end(status, days):
    now = datetime(2025, 1, 1, tzinfo=UTC)
    period_end = normalize_timestamp(_epoch(now + timedelta(days=days)))

    assert resolve_plan_status(status, period_end, now=now) == "pro"


def test_format_timestamp_matches_normalized_form():
    value = datetime(2025, 1, 1, tzinfo=UTC)
    assert format_timestamp(value) == normalize_timestamp(1735689600)
    assert format_timestamp(None) is None


def test_active_statuses_resolve_to_pro():
    for status in ("active", "trialing", "past_due", " Active "):
        assert resolve_plan_status(status, None) == "pro"


def test_unknown_statuses_resolve_to_free():
    for status in ("incomplete", "unpaid", "paused", "", None, 42):
        assert resolve_plan_status(status, None) == "free"


def test_canceled_without_period_end_is_free():
    assert resolve_plan_status("canceled", None) == "free"


def test_canceled_at_exact_period_end_is_free():
    now = datetime(2025, 1, 1, tzinfo=UTC)
    assert resolve_plan_status("canceled", "2025-01-01T00:00:00.000Z", now=now) == "free"


def test_period_end_prefers_top_level_value():
    subscription = ProviderSubscription.from_provider(
        {
            "id": "sub_123",
            "current_period_end": 1735689600,
            "items": {"data": [{"id": "si_1", "current_period_end": 1767225600}]},
        }
    )
    assert resolve_subscription_period_end(subscription) == "2025-01-01T00:00:00.000Z"


def test_period_end_falls_back_to_latest_item():
    subscription = ProviderSubscription.from_provider(
        {
            "id": "sub_123",
            "items": {
                "object": "list",
                "data": [
                    {"id": "si_1", "current_period_end": 1735689600},
                    {"id": "si_2", "current_period_end": 1767225600},
                    {"id": "si_3", "current_period_end": "soon"},
                ],
            },
        }
    )
    assert resolve_subscription_period_end(subscription) == "2026-01-01T00:00:00.000Z"


def test_period_end_is_none_without_epochs():
    subscription = ProviderSubscription.from_provider({"id": "sub_123", "items": {"data": []}})
    assert resolve_subscription_period_end(subscription) is None
    assert resolve_subscription_period_end(None) is None


def test_active_subscription_resolves_pro_row():
    subscription = ProviderSubscription.from_provider(
        {
            "id": "sub_123",
            "status": "active",
            "customer": "cus_123",
            "current_period_end": 1735689600,
        }
    )
    payload = build_subscription_payload(
        ACCOUNT_ID, subscription, now=datetime(2024, 12, 1, tzinfo=UTC)
    )

    assert payload["status"] == "pro"
    assert payload["plan_code"] == "pro"
    assert payload["current_period_end"] == "2025-01-01T00:00:00.000Z"
    assert payload["provider_customer_id"] == "cus_123"


def test_canceled_subscription_keeps_entitlement_until_period_end():
    now = datetime.now(UTC)
    subscription = ProviderSubscription.from_provider(
        {
            "id": "sub_123",
            "status": "canceled",
            "cancel_at_period_end": True,
            "current_period_end": _epoch(now + timedelta(days=10)),
        }
    )
    payload = build_subscription_payload(ACCOUNT_ID, subscription, now=now)

    assert payload["status"] == "cancelled"
    assert payload["plan_code"] == "pro"
    assert payload["cancel_at_period_end"] is True


def test_canceled_subscription_past_period_end_is_free():
    now = datetime.now(UTC)
    subscription = ProviderSubscription.from_provider(
        {
            "id": "sub_123",
            "status": "canceled",
            "current_period_end": _epoch(now - timedelta(days=1)),
        }
    )
    payload = build_subscription_payload(ACCOUNT_ID, subscription, now=now)

    assert payload["status"] == "free"
    assert payload["plan_code"] == "free"


def test_plan_status_helpers():
    assert normalize_plan_status("PRO") == "pro"
    assert normalize_plan_status("canceled") == "cancelled"
    assert normalize_plan_status("trialing") == "free"
    assert has_active_plan("pro") is True
    assert has_active_plan("cancelled") is True
    assert has_active_plan("free") is False


def test_cancellation_details_are_copied():
    details = {"reason": "cancellation_requested", "feedback": None, "comment": "too pricey"}
    copied = serialize_cancellation_details(details)
    assert copied == details
    assert copied is not details
    assert serialize_cancellation_details({}) is None
    assert serialize_cancellation_details(None) is None


def test_customer_reference_narrowing():
    by_id = ProviderSubscription.from_provider({"id": "sub_1", "customer": "cus_1"}).customer
    embedded = ProviderSubscription.from_provider(
        {"id": "sub_2", "customer": {"id": "cus_2", "email": "a@b.test"}}
    ).customer

    assert isinstance(by_id, CustomerId)
    assert isinstance(embedded, EmbeddedCustomer)
    assert customer_id_of(by_id) == "cus_1"
    assert customer_id_of(embedded) == "cus_2"
    assert customer_id_of(None) is None


def test_checkout_session_parses_expanded_subscription():
    session = ProviderCheckoutSession.from_provider(
        {
            "id": "cs_test_123",
            "status": "complete",
            "subscription": {"id": "sub_123", "status": "active"},
            "customer_details": {"email": "owner@twinmind.test"},
        }
    )
    assert isinstance(session.subscription, ProviderSubscription)
    assert session.subscription.id == "sub_123"
    assert session.customer_email == "owner@twinmind.test"

    by_id = ProviderCheckoutSession.from_provider({"id": "cs_test_456", "subscription": "sub_456"})
    assert by_id.subscription == "sub_456"
    assert by_id.status is None
