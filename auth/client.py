from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import httpx
from supabase import AuthError as SupabaseAuthError
from supabase import Client, create_client

from backend.http import sanitize
from backend.rest import RestConfig, load_rest_config

from .errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str


@dataclass(frozen=True)
class AuthTokens:
    user: AuthUser
    access_token: str | None
    refresh_token: str | None


def _user_from(user: Any) -> AuthUser:
    return AuthUser(id=str(getattr(user, "id", "") or ""), email=str(getattr(user, "email", "") or ""))


def _tokens_from(response: Any, code: str) -> AuthTokens:
    user = getattr(response, "user", None)
    if user is None or not getattr(user, "id", None):
        raise AuthError(code=code, message="auth service returned no user")
    session = getattr(response, "session", None)
    return AuthTokens(
        user=_user_from(user),
        access_token=getattr(session, "access_token", None),
        refresh_token=getattr(session, "refresh_token", None),
    )


class AuthClient:
    """Session calls against the hosted Supabase auth service."""

    def __init__(self, config: RestConfig | None = None, client: Client | None = None) -> None:
        self._config = config or load_rest_config()
        self._client = client

    @property
    def auth(self):  # type: ignore[no-untyped-def]
        if self._client is None:
            self._client = create_client(self._config.url, self._config.anon_key)
        return self._client.auth

    def _call(self, action: str, code: str, func, *args):  # type: ignore[no-untyped-def]
        try:
            return func(*args)
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            logger.warning("auth %s failed: %s", action, exc)
            raise AuthError(code=code, message=sanitize(str(exc))) from exc

    def sign_up(self, email: str, password: str) -> AuthTokens:
        response = self._call(
            "sign up", "signup_failed", self.auth.sign_up, {"email": email, "password": password}
        )
        return _tokens_from(response, "signup_failed")

    def sign_in(self, email: str, password: str) -> AuthTokens:
        response = self._call(
            "sign in",
            "login_failed",
            self.auth.sign_in_with_password,
            {"email": email, "password": password},
        )
        tokens = _tokens_from(response, "login_failed")
        if not tokens.access_token:
            raise AuthError(code="login_failed", message="login returned no session")
        return tokens

    def sign_out(self, access_token: str) -> None:
        self._call("sign out", "logout_failed", self.auth.admin.sign_out, access_token)

    def get_user(self, access_token: str) -> AuthUser:
        response = self._call("user lookup", "invalid_token", self.auth.get_user, access_token)
        user = getattr(response, "user", None)
        if user is None or not getattr(user, "id", None):
            raise AuthError(code="invalid_token", message="token resolved to no user")
        return _user_from(user)
