"""FastAPI dependency injection."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.config import Settings, get_settings
from twinmind.database import get_session_factory
from twinmind.models import Profile

from api.services.access import AccessContext
from api.services.workspace_service import get_client_memberships, get_primary_account_id

ACCESS_TOKEN_COOKIE_NAME = "sb-access-token"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_app_settings() -> Settings:
    return get_settings()


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth[7:].strip()
        return token or None
    return None


def _extract_cookie_token(request: Request, cookie_name: str) -> str | None:
    cookie_token = request.cookies.get(cookie_name, "").strip()
    return cookie_token or None


def _raw_token(request: Request) -> str | None:
    return _extract_bearer_token(request) or _extract_cookie_token(
        request, ACCESS_TOKEN_COOKIE_NAME
    )


def _decode_token(raw_token: str, settings: Settings) -> dict:
    return jwt.decode(
        raw_token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience or None,
    )


def _parse_subject(payload: dict) -> uuid.UUID | None:
    raw = str(payload.get("sub") or "").strip()
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


async def get_current_profile(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Profile:
    """Profile of the bearer of a Supabase access token (header or cookie)."""
    raw_token = _raw_token(request)
    if not raw_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    try:
        payload = _decode_token(raw_token, settings)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    profile_id = _parse_subject(payload)
    profile = await db.get(Profile, profile_id) if profile_id else None
    if not profile:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated.")
    return profile


async def get_optional_profile(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Profile | None:
    raw_token = _raw_token(request)
    if not raw_token:
        return None
    try:
        payload = _decode_token(raw_token, settings)
    except JWTError:
        return None
    profile_id = _parse_subject(payload)
    if profile_id is None:
        return None
    return await db.get(Profile, profile_id)


async def get_access_context(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> AccessContext:
    role = str(getattr(profile, "role", "") or "").strip().lower()
    ctx = AccessContext(profile_id=profile.id, role=role)
    if ctx.is_client:
        client_ids = await get_client_memberships(db, profile.id)
        if not client_ids:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="No associated clients."
            )
        return AccessContext(profile_id=profile.id, role=role, client_ids=client_ids)

    account_id = await get_primary_account_id(db, profile.id)
    return AccessContext(profile_id=profile.id, role=role, account_id=account_id)
