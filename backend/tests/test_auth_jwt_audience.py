import jwt
import pytest
from fastapi import HTTPException

from app.core.auth import get_current_user
from app.core.config import get_settings


def _make_token(secret: str, aud: str, *, sub: str | None = "00000000-0000-0000-0000-000000000123") -> str:
    payload = {
        "email": "owner@test.local",
        "app_metadata": {"role": "OWNER"},
        "aud": aud,
    }
    if sub is not None:
        payload["sub"] = sub
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def jwt_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "test-secret")
    monkeypatch.setenv("SUPABASE_JWT_AUDIENCE", "authenticated")
    get_settings.cache_clear()


def test_get_current_user_accepts_matching_audience(jwt_env):
    token = _make_token("test-secret", "authenticated")
    user = get_current_user(authorization=f"Bearer {token}")
    assert user.id == "00000000-0000-0000-0000-000000000123"
    assert user.email == "owner@test.local"
    assert user.role == "OWNER"


def test_get_current_user_rejects_wrong_audience(jwt_env):
    token = _make_token("test-secret", "other")
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_get_current_user_rejects_wrong_secret(jwt_env):
    token = _make_token("not-the-secret", "authenticated")
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_get_current_user_requires_subject(jwt_env):
    token = _make_token("test-secret", "authenticated", sub=None)
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_missing_bearer_is_401(jwt_env):
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=None)
    assert exc.value.status_code == 401


def test_unconfigured_auth_is_500(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "")
    monkeypatch.setenv("SUPABASE_URL", "")
    get_settings.cache_clear()

    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization="Bearer abc")
    assert exc.value.status_code == 500
