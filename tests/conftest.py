"""
Test Configuration

Pytest configuration and shared fixtures for all tests.

The application runs against a SQLite file database and a fake Airtable
served through httpx.MockTransport, so no network access is needed.
"""

import os

# Must be set before any application module reads the settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["AIRTABLE_CLIENT_ID"] = "test-client-id"
os.environ["AIRTABLE_CLIENT_SECRET"] = ""
os.environ["REDIS_URL"] = ""
os.environ["SYNC_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["CLIENT_URL"] = "http://localhost:3000"

import copy
from datetime import timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

SAMPLE_FIELDS = [
    {
        "airtableFieldId": "fldName",
        "airtableFieldName": "Name",
        "airtableFieldType": "singleLineText",
        "label": "Your Name",
        "required": True,
    },
    {
        "airtableFieldId": "fldRole",
        "airtableFieldName": "Role",
        "airtableFieldType": "singleSelect",
        "label": "Role",
        "options": [{"id": "selEng", "name": "Engineer"}, {"id": "selDes", "name": "Designer"}],
    },
    {
        "airtableFieldId": "fldStack",
        "airtableFieldName": "Stack",
        "airtableFieldType": "multipleSelect",
        "label": "Stack",
        "required": True,
        "options": [{"id": "selPy", "name": "Python"}, {"id": "selGo", "name": "Go"}],
        "showWhen": [{"fieldId": "fldRole", "operator": "equals", "value": "Engineer"}],
    },
]


class FakeAirtable:
    """
    In-process stand-in for the Airtable API and token endpoint.

    Routes are keyed by (method, path); unknown routes answer 404.
    Every request is recorded for assertions.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, json: Any = None) -> None:
        self.routes[(method.upper(), path)] = (status, json if json is not None else {})

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": {"type": "NOT_FOUND", "message": "Not found"}})
        status, body = route
        return httpx.Response(status, json=body)


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """Get test database session on fresh tables."""
    from core.database import engine, SessionLocal
    from core.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# =============================================================================
# Airtable
# =============================================================================

@pytest.fixture
def app_settings():
    from config.settings import get_settings
    return get_settings()


@pytest.fixture
def fake_airtable() -> FakeAirtable:
    return FakeAirtable()


@pytest.fixture
async def http_client(fake_airtable) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_airtable.handler)) as client:
        yield client


@pytest.fixture
def airtable_client(app_settings, http_client):
    from services.airtable.client import AirtableClient
    return AirtableClient(app_settings, http_client=http_client)


@pytest.fixture
def auth_controller(app_settings, airtable_client, http_client):
    from services.auth.oauth import AuthFlowController
    return AuthFlowController(app_settings, airtable_client, http_client=http_client)


@pytest.fixture
def sync_service(app_settings, airtable_client, auth_controller):
    from services.forms.sync import ResponseSyncService
    return ResponseSyncService(app_settings, airtable_client, auth_controller)


# =============================================================================
# Users & Forms
# =============================================================================

async def create_user(
    db: AsyncSession,
    airtable_user_id: str = "usrOwner",
    email: str = "owner@example.com",
    expires_in: Optional[timedelta] = timedelta(hours=1),
    refresh_token: Optional[str] = "refresh-1",
):
    from core.models import User, generate_id, utcnow

    user = User(
        id=generate_id(),
        airtable_user_id=airtable_user_id,
        email=email,
        airtable_access_token=f"access-{airtable_user_id}",
        airtable_refresh_token=refresh_token,
        airtable_token_expires_at=utcnow() + expires_in if expires_in is not None else None,
        profile={"name": email.split("@")[0], "avatarUrl": None, "airtableUsername": email},
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_form(db: AsyncSession, owner, **overrides):
    from core.models import Form, generate_id
    from services.forms.derivations import normalize_fields, merge_settings, prepare_form_for_write

    values = {
        "id": generate_id(),
        "user_id": owner.id,
        "title": "Contact",
        "description": "Contact form",
        "airtable_base_id": "appBase",
        "airtable_base_name": "CRM",
        "airtable_table_id": "tblLeads",
        "airtable_table_name": "Leads",
        "fields": normalize_fields(SAMPLE_FIELDS),
        "settings": merge_settings(None, overrides.pop("settings", None)),
        "is_active": True,
        "is_published": True,
        "stats": {},
        "share_settings": {},
    }
    values.update(overrides)

    form = Form(**values)
    prepare_form_for_write(form, "http://localhost:3000")
    db.add(form)
    await db.commit()
    await db.refresh(form)
    return form


@pytest.fixture
def sample_fields() -> List[Dict[str, Any]]:
    """Name (required text), Role (select), Stack (required, shown for engineers)."""
    return copy.deepcopy(SAMPLE_FIELDS)


@pytest.fixture
def make_user(test_db):
    async def _make(**kwargs):
        return await create_user(test_db, **kwargs)
    return _make


@pytest.fixture
def make_form(test_db):
    async def _make(owner, **overrides):
        return await create_form(test_db, owner, **overrides)
    return _make


@pytest.fixture
async def user(test_db):
    return await create_user(test_db)


@pytest.fixture
async def other_user(test_db):
    return await create_user(test_db, airtable_user_id="usrOther", email="other@example.com")


@pytest.fixture
def auth_headers(user) -> Dict[str, str]:
    from auth import create_session_token
    return {"Authorization": f"Bearer {create_session_token(user.id)}"}


@pytest.fixture
def other_headers(other_user) -> Dict[str, str]:
    from auth import create_session_token
    return {"Authorization": f"Bearer {create_session_token(other_user.id)}"}


@pytest.fixture
async def form(test_db, user):
    return await create_form(test_db, user)


# =============================================================================
# API Client
# =============================================================================

@pytest.fixture
async def client(
    test_db,
    airtable_client,
    auth_controller,
    sync_service,
) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client for API testing."""
    from main import app
    from core.database import get_db
    from core.dependencies import get_airtable_client, get_auth_controller, get_sync_service
    from utils.cache import clear_memory_cache
    from utils.rate_limit import limiter

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_airtable_client] = lambda: airtable_client
    app.dependency_overrides[get_auth_controller] = lambda: auth_controller
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    limiter.enabled = False
    clear_memory_cache()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    clear_memory_cache()
