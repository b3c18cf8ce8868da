"""Authentication through Supabase Auth.

Invariants:
    - Registration always creates the profile on the free plan; paid plans come only from billing
    - A validated token is cached, so repeated requests do not call Supabase Auth again
    - Logout drops the token from the cache
    - Invalid tokens and credentials give 401
"""

import pytest
from fastapi import HTTPException

from app.modules.auth.schemas import LoginRequest, RegisterRequest
from app.modules.auth.service import AuthService


@pytest.fixture
def service(db):
    return AuthService(db)


def test_register_creates_profile_on_free_plan(service, db):
    result = service.register(RegisterRequest(
        email="new@example.com", password="s3cret-pass", full_name="New Agent",
    ))

    assert result.subscription_type == "free"
    profile = db.rows("profiles")[0]
    assert profile["id"] == result.user_id
    assert profile["max_assistants"] == 1
    assert profile["max_minutes_monthly"] == 10
    assert profile["current_usage_minutes"] == 0
    assert db.auth.users["new@example.com"]["user_metadata"] == {"full_name": "New Agent"}


def test_register_ignores_requested_paid_plan(service, db):
    result = service.register(RegisterRequest(email="new@example.com", password="s3cret-pass", plan="pro"))

    assert result.subscription_type == "free"
    profile = db.rows("profiles")[0]
    assert profile["subscription_type"] == "free"
    assert profile["max_assistants"] == 1
    assert profile["max_minutes_monthly"] == 10


def test_register_over_http_ignores_plan(anon_client, db):
    res = anon_client.post("/api/v1/auth/register", json={
        "email": "new@example.com", "password": "s3cret-pass", "plan": "pro",
    })

    assert res.status_code == 201
    assert res.json()["subscription_type"] == "free"
    assert db.rows("profiles")[0]["max_phone_numbers"] == 1


def test_register_twice_is_rejected(service):
    service.register(RegisterRequest(email="new@example.com", password="s3cret-pass"))
    with pytest.raises(HTTPException) as exc_info:
        service.register(RegisterRequest(email="new@example.com", password="s3cret-pass"))
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "User already exists"


def test_login_returns_token(service):
    service.register(RegisterRequest(email="new@example.com", password="s3cret-pass"))

    token = service.login(LoginRequest(email="new@example.com", password="s3cret-pass"))
    assert token.access_token.startswith("token-")
    assert token.token_type == "bearer"

    with pytest.raises(HTTPException) as exc_info:
        service.login(LoginRequest(email="new@example.com", password="wrong-pass"))
    assert exc_info.value.status_code == 401


def test_current_user_is_cached(service, db):
    token = db.auth.issue_token({"id": "user-1", "email": "agent@example.com"})

    first = service.get_current_user(token)
    second = service.get_current_user(token)

    assert first == second
    assert first["id"] == "user-1"
    assert db.auth.get_user_calls == 1


def test_logout_clears_cached_token(service, db):
    token = db.auth.issue_token({"id": "user-1", "email": "agent@example.com"})
    service.get_current_user(token)

    assert service.logout(token) is True
    service.get_current_user(token)

    assert db.auth.get_user_calls == 2
    assert db.auth.sign_out_calls == 1


def test_invalid_token_is_unauthorized(service):
    with pytest.raises(HTTPException) as exc_info:
        service.get_current_user("garbage")
    assert exc_info.value.status_code == 401


def test_protected_route_requires_bearer(anon_client):
    res = anon_client.get("/api/v1/assistants")
    assert res.status_code in (401, 403)
    assert res.json()["success"] is False


def test_invalid_token_gets_error_envelope(anon_client):
    res = anon_client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "UNAUTHORIZED"


def test_me_returns_profile_and_plan(anon_client, db, profile):
    token = db.auth.issue_token({"id": profile["id"], "email": profile["email"]})

    res = anon_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert res.status_code == 200
    body = res.json()
    assert body["profile"]["id"] == profile["id"]
    assert body["plan"]["name"] == "free"
    assert body["plan"]["max_minutes_monthly"] == 10
