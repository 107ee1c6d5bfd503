"""Landing page for users returning from Stripe Checkout."""

from __future__ import annotations

import html
import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.config import Settings
from twinmind.models import Profile

from api.dependencies import get_app_settings, get_db, get_optional_profile
from api.services.checkout_return import COMPLETE_SESSION_STATUS, reconcile_checkout_session
from api.services.errors import BillingError
from api.services.stripe_service import retrieve_checkout_session
from api.services.stripe_subscription import PlanStatus

logger = logging.getLogger(__name__)
router = APIRouter()

SYNC_ERROR_MESSAGE = (
    "We processed your payment, but we were unable to update your workspace "
    "subscription automatically. Please contact support so we can help."
)


def _error_payload(exc: Exception) -> dict:
    if isinstance(exc, BillingError):
        return exc.to_dict()
    return {"type": type(exc).__name__, "message": str(exc)}


def _page(title: str, body: str) -> str:
    return f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{html.escape(title)}</title>
  </head>
  <body>
    <main>
      <section>
{body}
      </section>
    </main>
  </body>
</html>"""


def render_success(
    settings: Settings, customer_email: str | None, plan_status: PlanStatus
) -> str:
    greeting = f", {html.escape(customer_email)}" if customer_email else ""
    billing_href = html.escape(settings.billing_path)
    if plan_status == "pro":
        title = "Your TwinMind Premium plan is active"
        detail = (
            f"Thanks for upgrading{greeting}! Your workspace subscription has been moved to the"
            " pro plan and you can now manage billing directly from the TwinMind billing center."
        )
    elif plan_status == "cancelled":
        title = "Your TwinMind Premium plan is cancelled"
        detail = (
            f"Thanks{greeting}. Your workspace keeps Premium access until the end of the"
            " current billing period. You can resume it from the TwinMind billing center."
        )
    else:
        title = "Checkout complete"
        detail = (
            f"Thanks{greeting}. Stripe has not activated your subscription yet, so your"
            " workspace stays on the free plan for now. Check the TwinMind billing center"
            " for the latest status."
        )
    return _page(
        title,
        f"""        <h1>{html.escape(title)}</h1>
        <p>{detail}</p>
        <p><a href="{billing_href}">Return to billing</a></p>""",
    )


def render_sync_error(settings: Settings) -> str:
    support = html.escape(settings.support_email)
    billing_href = html.escape(settings.billing_path)
    return _page(
        "We need a hand to finish your upgrade",
        f"""        <h1>We need a hand to finish your upgrade</h1>
        <p>{html.escape(SYNC_ERROR_MESSAGE)} You can email
        <a href="mailto:{support}">{support}</a> and we'll make sure everything is squared away.</p>
        <p><a href="{billing_href}">Return to billing</a></p>""",
    )


@router.get("/return", response_class=HTMLResponse)
async def checkout_return(
    session_id: str | None = None,
    profile: Profile | None = Depends(get_optional_profile),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    session_id = str(session_id or "").strip()
    if not session_id:
        raise HTTPException(
            status_code=400,
            detail="Please provide a valid session_id (`cs_test_...`)",
        )

    try:
        session = retrieve_checkout_session(settings, session_id)
    except Exception as exc:
        logger.error("Checkout session retrieve failed for %s: %s", session_id, exc)
        raise HTTPException(status_code=502, detail="Unable to load checkout session.")

    # Abandoned or unfinished checkouts go back to billing without touching the database.
    if session.status != COMPLETE_SESSION_STATUS:
        return RedirectResponse(url=settings.billing_path, status_code=303)

    try:
        result = await reconcile_checkout_session(db, settings, session, profile)
    except Exception as exc:
        logger.error(
            "Billing return subscription sync failed: %s",
            json.dumps({"session_id": session_id, "error": _error_payload(exc)}, default=str),
        )
        return HTMLResponse(render_sync_error(settings))

    logger.info(
        "Billing return synced session %s: plan=%s status=%s",
        session_id,
        result.plan_code,
        result.plan_status,
    )
    return HTMLResponse(render_success(settings, session.customer_email, result.plan_status))
