from __future__ import annotations

from pathlib import Path

import pytest

from auth import AuthError, AuthService, AuthTokens, AuthUser, SessionCache, UserSession


class _FakeAuthClient:
    def __init__(self, *, access_token: str | None = "access-1") -> None:
        self.access_token = access_token
        self.signed_out: list[str] = []

    def sign_up(self, email: str, password: str) -> AuthTokens:
        return AuthTokens(
            user=AuthUser(id="user-9", email=email),
            access_token=self.access_token,
            refresh_token="refresh-1" if self.access_token else None,
        )

    def sign_in(self, email: str, password: str) -> AuthTokens:
        if password != "secret":
            raise AuthError(code="login_failed", message="Invalid login credentials")
        return AuthTokens(user=AuthUser(id="user-1", email=email), access_token="access-2", refresh_token="r")

    def sign_out(self, access_token: str) -> None:
        self.signed_out.append(access_token)

    def get_user(self, access_token: str) -> AuthUser:
        if access_token != "access-2":
            raise AuthError(code="invalid_token", message="bad token")
        return AuthUser(id="user-1", email="ana@example.com")


def test_sign_up_creates_user_and_usage_rows(backend, tmp_path: Path) -> None:
    cache = SessionCache(tmp_path / "session.json")
    service = AuthService(_FakeAuthClient(), backend, cache)

    result = service.sign_up("new@example.com", "pw")

    assert result.needs_email_confirmation is False
    assert result.session is not None
    assert result.session.user_id == "user-9"
    user_row = backend.select_one("users", filters={"id": "user-9"})
    assert user_row["email"] == "new@example.com"
    assert user_row["tier"] == "free"
    usage = backend.select_one("user_usage", filters={"user_id": "user-9"})
    assert usage["videos_created"] == 0
    assert cache.load() == result.session


def test_sign_up_rejects_existing_email(backend, user) -> None:
    service = AuthService(_FakeAuthClient(), backend)

    with pytest.raises(AuthError) as exc:
        service.sign_up(user.email, "pw")

    assert exc.value.code == "user_exists"


def test_sign_up_waiting_for_email_confirmation_writes_nothing(backend) -> None:
    service = AuthService(_FakeAuthClient(access_token=None), backend)

    result = service.sign_up("later@example.com", "pw")

    assert result.needs_email_confirmation is True
    assert result.session is None
    assert backend.select("users") == []


def test_sign_up_requires_credentials(backend) -> None:
    with pytest.raises(ValueError):
        AuthService(_FakeAuthClient(), backend).sign_up("  ", "pw")


def test_log_in_loads_api_keys_and_caches(backend, user, tmp_path: Path) -> None:
    cache = SessionCache(tmp_path / "session.json")
    service = AuthService(_FakeAuthClient(), backend, cache)

    session = service.log_in(user.email, "secret")

    assert session.openai_api_key == "sk-test"
    assert session.heygen_api_key == "hg-test"
    assert service.restore() == session


def test_log_in_failure_propagates(backend, user) -> None:
    with pytest.raises(AuthError) as exc:
        AuthService(_FakeAuthClient(), backend).log_in(user.email, "wrong")
    assert exc.value.code == "login_failed"


def test_update_api_keys_and_log_out(backend, user, tmp_path: Path) -> None:
    cache = SessionCache(tmp_path / "session.json")
    client = _FakeAuthClient()
    service = AuthService(client, backend, cache)

    updated = service.update_api_keys(user, "sk-new", "")

    assert updated.openai_api_key == "sk-new"
    assert updated.heygen_api_key is None
    row = backend.select_one("users", columns="openai_key,heygen_key", filters={"id": user.user_id})
    assert row == {"openai_key": "sk-new", "heygen_key": None}

    service.log_out(updated)

    assert client.signed_out == ["token-1"]
    assert service.restore() is None


def test_update_api_keys_requires_session(backend) -> None:
    with pytest.raises(AuthError) as exc:
        AuthService(_FakeAuthClient(), backend).update_api_keys(None, "a", "b")
    assert exc.value.code == "not_logged_in"


def test_session_for_token(backend, user) -> None:
    service = AuthService(_FakeAuthClient(), backend)

    session = service.session_for_token("access-2")

    assert session == UserSession(
        user_id="user-1",
        email="ana@example.com",
        access_token="access-2",
        openai_api_key="sk-test",
        heygen_api_key="hg-test",
    )
    with pytest.raises(AuthError):
        service.session_for_token("expired")


def test_session_cache_ignores_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert SessionCache(path).load() is None

    path.write_text('{"email": "no-id@example.com"}')
    assert SessionCache(path).load() is None
