"""API test configuration."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from api.dependencies import get_app_settings, get_db
from api.main import create_app
from httpx import ASGITransport, AsyncClient
from twinmind.config import Settings, reset_settings_cache


@pytest.fixture
def settings():
    return Settings(
        SUPABASE_JWT_SECRET="test-jwt-secret",
        SITE_URL="https://twinmind.test",
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_PUBLISHABLE_KEY="pk_test_123",
        STRIPE_WEBHOOK_SECRET="whsec_test_123",
        STRIPE_PRICE_ID="price_test_123",
        SUPPORT_EMAIL="billing@twinmind.test",
    )


@pytest.fixture
def app(settings):
    a = create_app()
    a.dependency_overrides[get_app_settings] = lambda: settings
    yield a
    a.dependency_overrides.clear()
    reset_settings_cache()


@pytest.fixture
def profile():
    return SimpleNamespace(id=uuid.uuid4(), role="owner", email="owner@twinmind.test")


@pytest.fixture
def mock_db():
    """Creates a mock AsyncSession with common patterns pre-configured."""
    session = AsyncMock()
    # AsyncSession.add() is synchronous; use MagicMock to avoid un-awaited coroutine warnings.
    session.add = MagicMock()
    # Default: execute returns empty result set
    empty_result = MagicMock()
    empty_result.scalars.return_value.all.return_value = []
    empty_result.scalars.return_value.first.return_value = None
    empty_result.scalar.return_value = 0
    empty_result.all.return_value = []
    empty_result.mappings.return_value.all.return_value = []
    empty_result.rowcount = 0
    session.execute.return_value = empty_result
    # Default: get returns None
    session.get.return_value = None
    return session


@pytest.fixture
async def client(app, mock_db):
    async def _override_db():
        yield mock_db

    app.dependency_overrides[get_db] = _override_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
