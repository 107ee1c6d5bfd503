"""Pydantic schemas for payment-provider (Stripe) objects.

Provider payloads arrive either as plain dicts (webhooks, tests) or as SDK
objects. ``from_provider`` constructors accept both and keep numeric fields
untyped so the normalizers decide what counts as a timestamp.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


def as_dict(value: Any) -> dict[str, Any]:
    """Plain-dict view of a provider object (mapping or SDK object)."""
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return dict(to_dict())
    raise TypeError(f"Unsupported provider object: {type(value).__name__}")


def _list_data(value: Any) -> list[Any]:
    """Unwrap a provider list object (``{"object": "list", "data": [...]}``)."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    data = as_dict(value).get("data")
    return list(data) if isinstance(data, list) else []


class CustomerId(BaseModel):
    """Customer referenced by identifier only."""
    kind: Literal["id"] = "id"
    id: str


class EmbeddedCustomer(BaseModel):
    """Customer object expanded inline."""
    kind: Literal["object"] = "object"
    id: str | None = None
    email: str | None = None
    deleted: bool = False


CustomerRef = Annotated[CustomerId | EmbeddedCustomer, Field(discriminator="kind")]


def customer_ref_from_provider(value: Any) -> CustomerId | EmbeddedCustomer | None:
    if isinstance(value, str):
        return CustomerId(id=value) if value else None
    if value is None:
        return None
    raw = as_dict(value)
    raw_id = raw.get("id")
    return EmbeddedCustomer(
        id=raw_id if isinstance(raw_id, str) else None,
        email=raw.get("email") if isinstance(raw.get("email"), str) else None,
        deleted=raw.get("deleted") is True,
    )


def customer_id_of(ref: CustomerId | EmbeddedCustomer | None) -> str | None:
    """Narrow a customer reference to its identifier."""
    match ref:
        case CustomerId(id=customer_id):
            return customer_id
        case EmbeddedCustomer(id=customer_id):
            return customer_id
        case _:
            return None


class ProviderPrice(BaseModel):
    id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderSubscriptionItem(BaseModel):
    id: str | None = None
    price: ProviderPrice | None = None
    current_period_end: Any = None


class ProviderSubscription(BaseModel):
    """Subset of a Stripe subscription used for reconciliation."""
    id: str = ""
    status: Any = None
    customer: CustomerRef | None = None
    current_period_end: Any = None
    cancel_at: Any = None
    canceled_at: Any = None
    cancel_at_period_end: Any = None
    cancellation_details: dict[str, Any] | None = None
    items: list[ProviderSubscriptionItem] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_provider(cls, value: Any) -> ProviderSubscription:
        raw = as_dict(value)
        items = []
        for item in _list_data(raw.get("items")):
            item_raw = as_dict(item)
            price_raw = item_raw.get("price")
            price = None
            if price_raw is not None and not isinstance(price_raw, str):
                price_dict = as_dict(price_raw)
                metadata = price_dict.get("metadata")
                price = ProviderPrice(
                    id=price_dict.get("id"),
                    metadata=as_dict(metadata) if metadata is not None else {},
                )
            elif isinstance(price_raw, str):
                price = ProviderPrice(id=price_raw)
            items.append(
                ProviderSubscriptionItem(
                    id=item_raw.get("id"),
                    price=price,
                    current_period_end=item_raw.get("current_period_end"),
                )
            )

        details = raw.get("cancellation_details")
        metadata = raw.get("metadata")
        raw_id = raw.get("id")
        return cls(
            id=raw_id if isinstance(raw_id, str) else "",
            status=raw.get("status"),
            customer=customer_ref_from_provider(raw.get("customer")),
            current_period_end=raw.get("current_period_end"),
            cancel_at=raw.get("cancel_at"),
            canceled_at=raw.get("canceled_at"),
            cancel_at_period_end=raw.get("cancel_at_period_end"),
            cancellation_details=as_dict(details) if details is not None else None,
            items=items,
            metadata=as_dict(metadata) if metadata is not None else {},
        )


class ProviderCheckoutSession(BaseModel):
    """Subset of a Stripe checkout session used by the return page."""
    id: str = ""
    status: str | None = None
    # Either the bare subscription id or the expanded object.
    subscription: str | ProviderSubscription | None = None
    customer: CustomerRef | None = None
    customer_email: str | None = None

    @classmethod
    def from_provider(cls, value: Any) -> ProviderCheckoutSession:
        raw = as_dict(value)
        subscription_raw = raw.get("subscription")
        subscription: str | ProviderSubscription | None
        if isinstance(subscription_raw, str):
            subscription = subscription_raw or None
        elif subscription_raw is None:
            subscription = None
        else:
            subscription = ProviderSubscription.from_provider(subscription_raw)

        details = as_dict(raw.get("customer_details"))
        email = details.get("email")
        raw_status = raw.get("status")
        return cls(
            id=str(raw.get("id") or ""),
            status=raw_status if isinstance(raw_status, str) else None,
            subscription=subscription,
            customer=customer_ref_from_provider(raw.get("customer")),
            customer_email=email if isinstance(email, str) and email else None,
        )
