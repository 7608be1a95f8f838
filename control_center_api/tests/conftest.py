"""
Shared fixtures for API tests.

The app is exercised without a database: tenant sessions are AsyncMock stand-ins,
the current user is overridden, and role lookups are patched on SecurityRepository.
"""
import os

os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("AUTO_SEED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from control_center.api.main import app  # noqa: E402
from control_center.core.deps import get_current_active_user, get_tenant_session  # noqa: E402
from control_center.repositories.security import SecurityRepository  # noqa: E402
from control_center.services.relays import get_http_client  # noqa: E402


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def tenant_headers(tenant_id):
    return {"X-Tenant-ID": str(tenant_id)}


@pytest.fixture
def current_user(tenant_id):
    return SimpleNamespace(
        id=uuid4(), tenant_id=tenant_id, email="admin@example.com", full_name="Admin",
        is_active=True, is_superadmin=False,
    )


@pytest.fixture
def db_session():
    return AsyncMock()


@pytest.fixture
def user_roles():
    """Role names granted to the current user; tests mutate this list."""
    return ["super_admin"]


@pytest.fixture
def client(db_session, current_user, user_roles, monkeypatch):
    async def _session():
        yield db_session

    monkeypatch.setattr(SecurityRepository, "list_role_names_for_user", AsyncMock(side_effect=lambda _id: list(user_roles)))
    monkeypatch.setattr(SecurityRepository, "list_permission_codes_for_user", AsyncMock(return_value=[]))
    app.dependency_overrides[get_tenant_session] = _session
    app.dependency_overrides[get_current_active_user] = lambda: current_user
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_http(client):
    """Install an httpx MockTransport for relay routes; set `.handler` per test."""
    holder = SimpleNamespace(handler=lambda request: httpx.Response(200, json={}))

    async def _client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: holder.handler(request))) as c:
            yield c

    app.dependency_overrides[get_http_client] = _client
    return holder
