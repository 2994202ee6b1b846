from __future__ import annotations

from dataclasses import asdict, dataclass, replace
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserSession:
    user_id: str
    email: str
    access_token: str | None = None
    refresh_token: str | None = None
    openai_api_key: str | None = None
    heygen_api_key: str | None = None

    def with_api_keys(self, openai_api_key: str | None, heygen_api_key: str | None) -> "UserSession":
        return replace(self, openai_api_key=openai_api_key, heygen_api_key=heygen_api_key)


def _cache_path() -> Path:
    return Path(os.getenv("SESSION_CACHE_FILE", ".state/session.json"))


class SessionCache:
    """Last signed-in user, kept on disk between runs.

    Holds cached API keys in plain JSON; it is a convenience cache and the
    hosted backend stays the source of truth.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else _cache_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> UserSession | None:
        try:
            if not self._path.exists():
                return None
            data = json.loads(self._path.read_text())
            if not isinstance(data, dict) or not data.get("user_id"):
                return None
            fields = UserSession.__dataclass_fields__
            return UserSession(**{key: value for key, value in data.items() if key in fields})
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("ignoring unreadable session cache %s: %s", self._path, exc)
            return None

    def save(self, session: UserSession) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(session), ensure_ascii=True))
        tmp.replace(self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
