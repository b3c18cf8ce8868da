"""Root conftest: shared test configuration and fixtures."""

import os

# Settings are read at import time; never talk to real services from tests
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-key")
os.environ.setdefault("VAPI_API_KEY", "test-vapi-key")
os.environ.setdefault("VAPI_WEBHOOK_SECRET", "test-vapi-secret")
os.environ.setdefault("MAKE_WEBHOOK_URL", "https://hook.make.test/voice-matrix")
os.environ.setdefault("MAKE_WEBHOOK_SECRET", "test-make-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SYNC_SCHEDULER_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from fake_supabase import FakeSupabase
from fake_vapi import FakeVapi

USER_ID = "11111111-1111-1111-1111-111111111111"
USER_EMAIL = "agent@example.com"


@pytest.fixture(autouse=True)
def _clear_auth_cache():
    from app.modules.auth.service import clear_auth_cache
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def vapi():
    return FakeVapi()


@pytest.fixture
def profile(db):
    """Free-plan profile that signed up on the 1st of the month"""
    return db.seed("profiles", {
        "id": USER_ID,
        "email": USER_EMAIL,
        "full_name": "Test Agent",
        "subscription_type": "free",
        "current_usage_minutes": 0,
        "team_id": None,
        "team_role": None,
        "created_at": "2026-01-01T00:00:00+00:00",
    })[0]


@pytest.fixture
def client(db, vapi, profile):
    """TestClient with Supabase, Vapi and the current user replaced"""
    from app.main import app
    from app.core.dependencies import get_current_user
    from app.database.supabase_client import get_service_supabase, get_supabase
    from app.integrations.vapi_client import get_vapi_client

    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    app.dependency_overrides[get_vapi_client] = lambda: vapi
    app.dependency_overrides[get_current_user] = lambda: {"id": USER_ID, "email": USER_EMAIL}
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client(db, vapi):
    """TestClient without an authenticated user override"""
    from app.main import app
    from app.database.supabase_client import get_service_supabase, get_supabase
    from app.integrations.vapi_client import get_vapi_client

    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    app.dependency_overrides[get_vapi_client] = lambda: vapi
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def without_vapi(monkeypatch):
    """Run routes as a deployment with no Vapi API key: the real dependency, no override"""
    from app.main import app
    from app.config.settings import settings
    from app.integrations.vapi_client import get_vapi_client

    monkeypatch.setattr(settings, "vapi_api_key", "")
    app.dependency_overrides.pop(get_vapi_client, None)
