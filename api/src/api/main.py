"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from twinmind.config import get_settings
from twinmind.database import close_engine

from api.routers import billing, billing_return, database, health, stripe_webhook

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        yield
    finally:
        await close_engine()


def _warn_insecure_defaults() -> None:
    settings = get_settings()
    if settings.jwt_secret == "change-me-in-production":
        logger.warning("SUPABASE_JWT_SECRET uses insecure default value")
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is empty; billing endpoints will fail")


def create_app() -> FastAPI:
    app = FastAPI(title="TwinMind API", version="0.1.0", lifespan=lifespan)
    settings = get_settings()
    _warn_insecure_defaults()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.site_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health.router, tags=["health"])
    app.include_router(billing.router, prefix="/app/billing", tags=["billing"])
    app.include_router(billing_return.router, tags=["billing"])
    app.include_router(database.router, prefix="/api/database", tags=["database"])
    app.include_router(stripe_webhook.router, prefix="/v1/stripe", tags=["stripe"])
    return app


app = create_app()
