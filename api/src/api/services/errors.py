"""Service-level exceptions for billing and the database proxy."""

from __future__ import annotations

from typing import Any


class BillingError(Exception):
    """Base class for billing failures; ``status_code`` is the HTTP mapping."""

    status_code = 500

    def to_dict(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "message": str(self)}


class InvalidArgument(BillingError):
    status_code = 400


class MissingSubscriptionReference(BillingError):
    status_code = 400

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Checkout session {session_id} has no subscription reference")
        self.session_id = session_id


class Unauthenticated(BillingError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated.") -> None:
        super().__init__(message)


class NoWorkspaceMembership(BillingError):
    status_code = 404

    def __init__(self, profile_id: str) -> None:
        super().__init__("Workspace account is not linked to this profile.")
        self.profile_id = profile_id

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "profile_id": self.profile_id}


class SubscriptionUpsertError(BillingError):
    status_code = 500

    def __init__(self, account_id: str, message: str) -> None:
        super().__init__(f"Unable to upsert subscription for account {account_id}: {message}")
        self.account_id = account_id
        self.detail = message

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "account_id": self.account_id, "detail": self.detail}


class QueryProxyError(Exception):
    """Rejected database proxy request, rendered as a PostgREST-style error."""

    status_code = 400
    code: str | None = None

    def __init__(self, message: str, *, details: str | None = None, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint

    def to_error(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "details": self.details,
            "hint": self.hint,
            "code": self.code,
        }


class UnsupportedMethod(QueryProxyError):
    code = "PGRST100"


class UnsupportedFilter(QueryProxyError):
    code = "PGRST100"


class InvalidPayload(QueryProxyError):
    code = "PGRST102"


class UnknownTable(QueryProxyError):
    status_code = 404
    code = "42P01"


class UnknownColumn(QueryProxyError):
    code = "42703"


class AccessDenied(QueryProxyError):
    status_code = 403
    code = "42501"
