"""Tests for Stripe webhook subscription sync."""

from __future__ import annotations

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

ACCOUNT_ID = uuid.UUID("6f1c1c3e-2b1a-4a55-9d8e-0d7d4c8b9a10")


def _event(event_type: str = "customer.subscription.updated", **subscription) -> dict:
    data = {
        "id": "sub_test_123",
        "status": "active",
        "customer": "cus_test_123",
        "current_period_end": 1893456000,
    }
    data.update(subscription)
    return {"id": "evt_test_123", "type": event_type, "data": {"object": data}}


async def _post(client: AsyncClient, headers: dict | None = None):
    return await client.post(
        "/v1/stripe/webhook",
        content=b"{}",
        headers={"stripe-signature": "sig_test"} if headers is None else headers,
    )


@pytest.mark.asyncio
async def test_webhook_requires_signature_header(client: AsyncClient):
    response = await _post(client, headers={})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_rejects_invalid_signature(client: AsyncClient):
    with patch(
        "api.routers.stripe_webhook.verify_webhook_signature",
        side_effect=ValueError("No signatures found"),
    ):
        response = await _post(client)

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


@pytest.mark.asyncio
async def test_webhook_unconfigured_is_unavailable(client: AsyncClient):
    with patch(
        "api.routers.stripe_webhook.verify_webhook_signature",
        side_effect=RuntimeError("Stripe webhook secret is not configured"),
    ):
        response = await _post(client)

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_webhook_rejects_missing_event_type(client: AsyncClient):
    event = _event()
    event.pop("type")
    with patch("api.routers.stripe_webhook.verify_webhook_signature", return_value=event):
        response = await _post(client)

    assert response.status_code == 400
    assert "Invalid webhook payload" in response.json()["detail"]


@pytest.mark.asyncio
async def test_webhook_ignores_unrelated_events(client: AsyncClient, mock_db):
    event = {"id": "evt_test_1", "type": "invoice.paid", "data": {"object": {"id": "in_1"}}}
    with patch("api.routers.stripe_webhook.verify_webhook_signature", return_value=event):
        response = await _post(client)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    mock_db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_webhook_ignores_unknown_subscription(client: AsyncClient, mock_db):
    with (
        patch("api.routers.stripe_webhook.verify_webhook_signature", return_value=_event()),
        patch(
            "api.routers.stripe_webhook.upsert_subscription_for_account",
            new_callable=AsyncMock,
        ) as upsert,
    ):
        response = await _post(client)

    assert response.status_code == 200
    upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_webhook_resyncs_known_subscription(client: AsyncClient, mock_db):
    existing = MagicMock()
    existing.scalars.return_value.first.return_value = SimpleNamespace(account_id=ACCOUNT_ID)
    mock_db.execute.return_value = existing

    with (
        patch(
            "api.routers.stripe_webhook.verify_webhook_signature",
            return_value=_event("customer.subscription.deleted", status="canceled"),
        ),
        patch(
            "api.routers.stripe_webhook.upsert_subscription_for_account",
            new_callable=AsyncMock,
        ) as upsert,
    ):
        response = await _post(client)

    assert response.status_code == 200
    upsert.assert_awaited_once()
    _, account_id, subscription = upsert.await_args.args
    assert account_id == str(ACCOUNT_ID)
    assert subscription.id == "sub_test_123"
    assert subscription.status == "canceled"


@pytest.mark.asyncio
async def test_webhook_processing_failure_is_server_error(client: AsyncClient, mock_db):
    existing = MagicMock()
    existing.scalars.return_value.first.return_value = SimpleNamespace(account_id=ACCOUNT_ID)
    mock_db.execute.return_value = existing

    with (
        patch("api.routers.stripe_webhook.verify_webhook_signature", return_value=_event()),
        patch(
            "api.routers.stripe_webhook.upsert_subscription_for_account",
            new_callable=AsyncMock,
            side_effect=RuntimeError("db down"),
        ),
    ):
        response = await _post(client)

    assert response.status_code == 500
    assert response.json()["detail"] == "Webhook processing failed"
