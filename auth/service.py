from __future__ import annotations

from dataclasses import dataclass
import logging

from backend import BackendError, DataBackend

from .client import AuthClient, AuthTokens
from .errors import AuthError
from .session import SessionCache, UserSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignUpResult:
    session: UserSession | None
    needs_email_confirmation: bool = False


def _require_credentials(email: str, password: str) -> str:
    email = (email or "").strip()
    if not email or not password:
        raise ValueError("email and password are required")
    return email


class AuthService:
    def __init__(
        self,
        client: AuthClient,
        backend: DataBackend,
        cache: SessionCache | None = None,
    ) -> None:
        self._client = client
        self._backend = backend
        self._cache = cache

    def _remember(self, session: UserSession) -> None:
        if self._cache is not None:
            self._cache.save(session)

    def _session_from(self, tokens: AuthTokens) -> UserSession:
        return UserSession(
            user_id=tokens.user.id,
            email=tokens.user.email,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )

    def _load_api_keys(self, session: UserSession) -> UserSession:
        try:
            rows = self._backend.with_token(session.access_token).select(
                "users", columns="openai_key,heygen_key", filters={"id": session.user_id}
            )
        except BackendError as exc:
            logger.error("failed to fetch API keys for %s: %s", session.user_id, exc)
            return session
        if not rows:
            return session
        return session.with_api_keys(rows[0].get("openai_key"), rows[0].get("heygen_key"))

    def sign_up(self, email: str, password: str) -> SignUpResult:
        email = _require_credentials(email, password)
        existing = self._backend.select("users", columns="id", filters={"email": email})
        if existing:
            raise AuthError(code="user_exists", message="User already exists")

        tokens = self._client.sign_up(email, password)
        if not tokens.access_token:
            return SignUpResult(session=None, needs_email_confirmation=True)

        session = self._session_from(tokens)
        self._backend.insert("users", {"id": session.user_id, "email": session.email, "tier": "free"})
        self._backend.insert("user_usage", {"user_id": session.user_id})
        self._remember(session)
        logger.info("signed up %s", session.email)
        return SignUpResult(session=session)

    def log_in(self, email: str, password: str) -> UserSession:
        email = _require_credentials(email, password)
        tokens = self._client.sign_in(email, password)
        session = self._load_api_keys(self._session_from(tokens))
        self._remember(session)
        return session

    def update_api_keys(
        self,
        session: UserSession | None,
        openai_api_key: str | None,
        heygen_api_key: str | None,
    ) -> UserSession:
        if session is None:
            raise AuthError(code="not_logged_in", message="No user logged in")
        self._backend.with_token(session.access_token).update(
            "users",
            {"openai_key": openai_api_key or None, "heygen_key": heygen_api_key or None},
            {"id": session.user_id},
        )
        updated = session.with_api_keys(openai_api_key or None, heygen_api_key or None)
        self._remember(updated)
        return updated

    def log_out(self, session: UserSession | None) -> None:
        if session is not None and session.access_token:
            self._client.sign_out(session.access_token)
        if self._cache is not None:
            self._cache.clear()

    def restore(self) -> UserSession | None:
        return self._cache.load() if self._cache is not None else None

    def session_for_token(self, access_token: str) -> UserSession:
        user = self._client.get_user(access_token)
        return self._load_api_keys(
            UserSession(user_id=user.id, email=user.email, access_token=access_token)
        )
