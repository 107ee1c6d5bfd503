"""Stripe SDK wrapper for checkout, billing portal and webhooks."""

from __future__ import annotations

from typing import Any

import stripe
from twinmind.config import Settings
from twinmind.schemas.billing import ProviderCheckoutSession, ProviderSubscription, as_dict

CHECKOUT_SESSION_EXPAND = ["subscription", "subscription.items", "customer"]


def _api_key(settings: Settings) -> str:
    secret_key = str(settings.stripe_secret_key or "").strip()
    if not secret_key:
        raise RuntimeError("Stripe is not configured")
    return secret_key


def retrieve_checkout_session(settings: Settings, session_id: str) -> ProviderCheckoutSession:
    """Fetch a checkout session with its subscription and customer expanded."""
    session = stripe.checkout.Session.retrieve(
        session_id,
        api_key=_api_key(settings),
        expand=CHECKOUT_SESSION_EXPAND,
    )
    return ProviderCheckoutSession.from_provider(session)


def retrieve_subscription(settings: Settings, subscription_id: str) -> ProviderSubscription:
    subscription = stripe.Subscription.retrieve(
        subscription_id,
        api_key=_api_key(settings),
        expand=["items"],
    )
    return ProviderSubscription.from_provider(subscription)


def create_embedded_checkout_session(
    settings: Settings,
    *,
    account_id: str,
    customer_id: str | None,
    return_url: str,
) -> str:
    """Create an embedded subscription checkout, return its client secret."""
    price_id = str(settings.stripe_price_id or "").strip()
    if not price_id:
        raise RuntimeError("STRIPE_PRICE_ID is not configured")

    session_payload: dict[str, Any] = {
        "ui_mode": "embedded",
        "client_reference_id": account_id,
        "metadata": {"accountId": account_id},
        "line_items": [{"price": price_id, "quantity": 1}],
        "mode": "subscription",
        "subscription_data": {"metadata": {"accountId": account_id}},
        "return_url": return_url,
        "automatic_tax": {"enabled": True},
    }
    if customer_id:
        session_payload["customer"] = customer_id

    session = stripe.checkout.Session.create(api_key=_api_key(settings), **session_payload)
    client_secret = as_dict(session).get("client_secret")
    if not client_secret:
        raise RuntimeError("Unable to retrieve client secret from Stripe session")
    return str(client_secret)


def create_billing_portal_session(settings: Settings, customer_id: str, return_url: str) -> str:
    """Create a Stripe Billing Portal session, return the URL."""
    session = stripe.billing_portal.Session.create(
        api_key=_api_key(settings),
        customer=customer_id,
        return_url=return_url,
    )
    url = as_dict(session).get("url")
    if not url:
        raise RuntimeError("Unable to create billing portal session.")
    return str(url)


def verify_webhook_signature(settings: Settings, payload: bytes, sig_header: str) -> Any:
    """Verify Stripe webhook signature and return parsed event."""
    webhook_secret = str(settings.stripe_webhook_secret or "").strip()
    if not webhook_secret:
        raise RuntimeError("Stripe webhook secret is not configured")
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
