from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi import HTTPException
from jose import jwt

import backend.main as backend_main
from backend import app_context
from backend.app.routes import dependencies


def _session_token(subject: str, *, expires_delta: timedelta = timedelta(hours=1), secret: Optional[str] = None) -> str:
    payload = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_delta}
    if backend_main.AUTH_JWT_AUDIENCE:
        payload["aud"] = backend_main.AUTH_JWT_AUDIENCE
    return jwt.encode(payload, secret or backend_main.AUTH_JWT_SECRET, algorithm=backend_main.JWT_ALGORITHM)


def test_get_optional_current_user_missing_cookie_returns_none():
    assert backend_main.get_optional_current_user(None) is None


def test_get_optional_current_user_invalid_token_returns_none():
    assert backend_main.get_optional_current_user("not-a-valid-token") is None


def test_get_optional_current_user_expired_token_returns_none(monkeypatch):
    expired_token = _session_token("user-42", expires_delta=timedelta(minutes=-5))

    def _unexpected_get_user_by_id(_uid: str):
        raise AssertionError("get_user_by_id should not be called for expired tokens")

    monkeypatch.setattr(backend_main, "get_user_by_id", _unexpected_get_user_by_id)

    assert backend_main.get_optional_current_user(expired_token) is None


def test_token_signed_with_another_secret_is_ignored(monkeypatch):
    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: pytest.fail("lookup for forged token"))

    assert backend_main.get_optional_current_user(_session_token("u1", secret="someone-else")) is None


def test_get_optional_current_user_valid_token_returns_user(monkeypatch):
    user = backend_main.UserOut(id="u1", email="alice@example.com", role="customer")

    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: user if uid == "u1" else None)

    result = backend_main.get_optional_current_user(_session_token(user.id))

    assert result is user


def test_get_current_user_rejects_unknown_profile(monkeypatch):
    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: None)

    with pytest.raises(HTTPException) as excinfo:
        backend_main.get_current_user(_session_token("ghost"))
    assert excinfo.value.status_code == 401


def test_get_current_user_requires_cookie():
    with pytest.raises(HTTPException) as excinfo:
        backend_main.get_current_user(None)
    assert excinfo.value.status_code == 401


def test_main_registers_identity_resolvers():
    assert app_context._get_current_user is backend_main.get_current_user
    assert app_context._get_optional_current_user is backend_main.get_optional_current_user


def test_router_dependencies_use_registered_resolvers(monkeypatch):
    monkeypatch.setattr(app_context, "_get_current_user", lambda session_token: ("user", session_token))
    monkeypatch.setattr(app_context, "_get_optional_current_user", lambda session_token: None)

    assert dependencies.get_current_user(session_token="tok") == ("user", "tok")
    assert dependencies.get_optional_current_user(session_token="tok") is None
