from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Any

from auth import AuthError, UserSession
from backend import BackendError, DataBackend

logger = logging.getLogger(__name__)

TABLE = "influencers"


@dataclass(frozen=True)
class Influencer:
    id: str
    user_id: str
    name: str
    template_id: str
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Influencer":
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            name=str(row.get("name") or ""),
            template_id=str(row.get("template_id") or ""),
            created_at=row.get("created_at"),
        )


def _require(value: str | None, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{field} is required")
    return value


class InfluencerStore:
    def __init__(self, session: UserSession | None, backend: DataBackend) -> None:
        self._session = session
        self._backend = backend.with_token(session.access_token if session else None)
        self._influencers: list[Influencer] = []

    def _user(self) -> UserSession:
        if self._session is None:
            raise AuthError(code="not_logged_in", message="No user logged in")
        return self._session

    def fetch(self) -> list[Influencer]:
        if self._session is None:
            return []
        try:
            rows = self._backend.select(
                TABLE, filters={"user_id": self._session.user_id}, order="created_at", descending=True
            )
        except BackendError as exc:
            logger.error("failed to fetch influencers: %s", exc)
            raise
        self._influencers = [Influencer.from_row(row) for row in rows]
        return list(self._influencers)

    def add(self, name: str, template_id: str) -> Influencer:
        user = self._user()
        values = {
            "user_id": user.user_id,
            "name": _require(name, "name"),
            "template_id": _require(template_id, "template_id"),
        }
        try:
            rows = self._backend.insert(TABLE, values)
        except BackendError as exc:
            logger.error("failed to create influencer: %s", exc)
            raise
        created = Influencer.from_row(rows[0])
        self._influencers.insert(0, created)
        return created

    def update(self, influencer_id: str, name: str | None = None, template_id: str | None = None) -> Influencer | None:
        values: dict[str, str] = {}
        if name is not None:
            values["name"] = _require(name, "name")
        if template_id is not None:
            values["template_id"] = _require(template_id, "template_id")
        if values:
            try:
                self._backend.update(TABLE, values, {"id": influencer_id})
            except BackendError as exc:
                logger.error("failed to update influencer %s: %s", influencer_id, exc)
                raise
        for index, influencer in enumerate(self._influencers):
            if influencer.id == influencer_id:
                self._influencers[index] = replace(influencer, **values)
                return self._influencers[index]
        return None

    def delete(self, influencer_id: str) -> None:
        try:
            self._backend.delete(TABLE, {"id": influencer_id})
        except BackendError as exc:
            logger.error("failed to delete influencer %s: %s", influencer_id, exc)
            raise
        self._influencers = [inf for inf in self._influencers if inf.id != influencer_id]

    def all(self) -> list[Influencer]:
        return list(self._influencers)

    def get(self, influencer_id: str) -> Influencer | None:
        return next((inf for inf in self._influencers if inf.id == influencer_id), None)

    def exists(self, influencer_id: str) -> bool:
        return self.get(influencer_id) is not None
