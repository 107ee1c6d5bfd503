"""Tests for the account subscription upsert."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

import pytest
from api.services.errors import InvalidArgument, SubscriptionUpsertError
from api.services.subscription_upsert import (
    _row_values,
    build_subscription_payload,
    build_upsert_statement,
    resolve_plan_code,
    upsert_subscription_for_account,
)
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from twinmind.schemas.billing import ProviderSubscription

ACCOUNT_ID = "6f1c1c3e-2b1a-4a55-9d8e-0d7d4c8b9a10"


def _subscription(**overrides) -> ProviderSubscription:
    raw = {
        "id": "sub_123",
        "status": "active",
        "customer": "cus_123",
        "current_period_end": 1735689600,
        "cancel_at_period_end": False,
        "items": {
            "data": [
                {
                    "id": "si_123",
                    "price": {"id": "price_123", "metadata": {}},
                    "current_period_end": 1735689600,
                }
            ]
        },
    }
    raw.update(overrides)
    return ProviderSubscription.from_provider(raw)


@pytest.mark.asyncio
async def test_upsert_requires_account_id(mock_db):
    with pytest.raises(InvalidArgument):
        await upsert_subscription_for_account(mock_db, "  ", _subscription())
    mock_db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_upsert_requires_subscription_id(mock_db):
    with pytest.raises(InvalidArgument):
        await upsert_subscription_for_account(mock_db, ACCOUNT_ID, _subscription(id=None))
    mock_db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_upsert_rejects_malformed_account_id(mock_db):
    with pytest.raises(InvalidArgument):
        await upsert_subscription_for_account(mock_db, "not-a-uuid", _subscription())
    mock_db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_upsert_issues_single_statement(mock_db):
    result = await upsert_subscription_for_account(mock_db, ACCOUNT_ID, _subscription())

    assert mock_db.execute.await_count == 1
    assert result.plan_status == "pro"
    assert result.plan_code == "pro"
    assert result.provider_status == "active"
    assert result.provider_customer_id == "cus_123"
    assert result.provider_subscription_id == "sub_123"
    assert result.current_period_end == "2025-01-01T00:00:00.000Z"
    assert result.cancel_at_period_end is False


@pytest.mark.asyncio
async def test_upsert_wraps_database_errors(mock_db):
    mock_db.execute.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))

    with pytest.raises(SubscriptionUpsertError) as exc_info:
        await upsert_subscription_for_account(mock_db, ACCOUNT_ID, _subscription())

    assert str(exc_info.value).startswith(
        f"Unable to upsert subscription for account {ACCOUNT_ID}:"
    )
    assert "connection lost" in str(exc_info.value)
    assert exc_info.value.to_dict()["account_id"] == ACCOUNT_ID


def test_upsert_statement_conflicts_on_account_id():
    payload = build_subscription_payload(ACCOUNT_ID, _subscription())
    stmt = build_upsert_statement(_row_values(payload))

    sql = str(stmt.compile(dialect=postgresql.dialect()))
    assert "INSERT INTO subscriptions" in sql
    assert "ON CONFLICT (account_id) DO UPDATE" in sql
    assert "provider_subscription_id = excluded.provider_subscription_id" in sql
    assert "account_id = excluded.account_id" not in sql


def test_row_values_parse_timestamps():
    payload = build_subscription_payload(
        ACCOUNT_ID, _subscription(), now=datetime(2024, 12, 1, tzinfo=UTC)
    )
    values = _row_values(payload)

    assert values["account_id"] == uuid.UUID(ACCOUNT_ID)
    assert values["current_period_end"] == datetime(2025, 1, 1, tzinfo=UTC)
    assert values["updated_at"] == datetime(2024, 12, 1, tzinfo=UTC)
    assert values["cancel_at"] is None


def test_payload_is_stable_apart_from_updated_at():
    subscription = _subscription()
    first = build_subscription_payload(
        ACCOUNT_ID, subscription, now=datetime(2024, 12, 1, tzinfo=UTC)
    )
    second = build_subscription_payload(
        ACCOUNT_ID, subscription, now=datetime(2024, 12, 2, tzinfo=UTC)
    )

    first.pop("updated_at")
    second.pop("updated_at")
    assert first == second


def test_plan_code_prefers_price_metadata():
    subscription = _subscription(
        items={
            "data": [
                {"id": "si_1", "price": {"id": "price_1", "metadata": {}}},
                {"id": "si_2", "price": {"id": "price_2", "metadata": {"plan_code": " team "}}},
            ]
        }
    )
    assert resolve_plan_code("pro", subscription) == "team"
    assert resolve_plan_code("free", subscription) == "team"


def test_plan_code_defaults_follow_plan_status():
    subscription = _subscription()
    assert resolve_plan_code("pro", subscription) == "pro"
    assert resolve_plan_code("cancelled", subscription) == "pro"
    assert resolve_plan_code("free", subscription) == "free"


def test_payload_drops_non_boolean_cancel_flag():
    payload = build_subscription_payload(
        ACCOUNT_ID, _subscription(cancel_at_period_end="yes", customer=None)
    )
    assert payload["cancel_at_period_end"] is None
    assert payload["provider_customer_id"] is None
    assert payload["provider"] == "stripe"
