from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from backend import BackendError, DataBackend

from .limits import coerce_int, decode_flag

logger = logging.getLogger(__name__)

LIMIT_FIELDS = ("avatars", "ai_cloning", "video_creation")
FLAG_FIELDS = ("automations", "ai_editing")
PLAN_FIELDS = ("plan_name", "price", *LIMIT_FIELDS, *FLAG_FIELDS)
USAGE_FIELDS = (
    "avatars_created",
    "videos_created",
    "ai_clone_created",
    "minutes_used",
    "automation",
    "ai_editing",
)
USER_FIELDS = ("email", "tier", "current_plan", "subscription_id")
UNKNOWN_EMAIL = "Unknown"


def encode_quota_field(field: str, value: Any) -> str:
    """Quota values are always written back as JSON text."""
    if field in FLAG_FIELDS:
        return json.dumps({"enabled": decode_flag(value)})
    limit = coerce_int(value)
    if limit is None:
        raise ValueError(f"{field} must be an integer limit")
    return json.dumps({"limit": limit})


def display_value(value: Any) -> Any:
    """Human-readable form of a stored quota field."""
    if not isinstance(value, str):
        return value
    try:
        parsed = json.loads(value)
    except ValueError:
        return value
    if isinstance(parsed, dict):
        return parsed.get("limit") or parsed.get("enabled")
    return parsed


def _pick(values: Mapping[str, Any], allowed: tuple[str, ...], what: str) -> dict[str, Any]:
    unknown = sorted(set(values) - set(allowed))
    if unknown:
        raise ValueError(f"cannot edit {what} fields: {', '.join(unknown)}")
    if not values:
        raise ValueError(f"no {what} fields to update")
    return dict(values)


class AdminService:
    """Back office editing of plans, usage counters, users and influencers."""

    def __init__(self, backend: DataBackend) -> None:
        self._backend = backend

    def list_plans(self) -> list[dict[str, Any]]:
        return self._backend.select("plans", order="id")

    def update_plan(self, plan_id: int, values: Mapping[str, Any]) -> dict[str, Any]:
        patch = _pick(values, PLAN_FIELDS, "plan")
        for field in (*LIMIT_FIELDS, *FLAG_FIELDS):
            if field in patch:
                patch[field] = encode_quota_field(field, patch[field])
        rows = self._backend.update("plans", patch, {"id": plan_id})
        if not rows:
            raise BackendError(code="not_found", message=f"plan {plan_id} not found", table="plans")
        logger.info("updated plan %s: %s", plan_id, sorted(patch))
        return rows[0]

    def _emails_by_id(self) -> dict[str, str]:
        rows = self._backend.select("users", columns="id,email")
        return {str(row["id"]): row.get("email") or UNKNOWN_EMAIL for row in rows}

    def list_usage(self) -> list[dict[str, Any]]:
        emails = self._emails_by_id()
        return [
            {**row, "email": emails.get(str(row.get("user_id")), UNKNOWN_EMAIL)}
            for row in self._backend.select("user_usage")
        ]

    def update_usage(self, user_id: str, values: Mapping[str, Any]) -> dict[str, Any]:
        patch = _pick(values, USAGE_FIELDS, "usage")
        rows = self._backend.update("user_usage", patch, {"user_id": user_id})
        if not rows:
            raise BackendError(code="not_found", message=f"no usage row for {user_id}", table="user_usage")
        return rows[0]

    def list_users(self) -> list[dict[str, Any]]:
        return self._backend.select("users", columns="id,email,tier,current_plan,subscription_id,created_at")

    def update_user(self, user_id: str, values: Mapping[str, Any]) -> dict[str, Any]:
        patch = _pick(values, USER_FIELDS, "user")
        if "email" in patch and not str(patch["email"] or "").strip():
            raise ValueError("email cannot be empty")
        rows = self._backend.update("users", patch, {"id": user_id})
        if not rows:
            raise BackendError(code="not_found", message=f"user {user_id} not found", table="users")
        return {key: rows[0].get(key) for key in ("id", *USER_FIELDS)}

    def delete_user(self, user_id: str) -> bool:
        removed = self._backend.delete("users", {"id": user_id})
        if removed:
            logger.info("deleted user %s", user_id)
        return bool(removed)

    def list_influencers(self) -> list[dict[str, Any]]:
        emails = self._emails_by_id()
        return [
            {**row, "owner_email": emails.get(str(row.get("user_id")), UNKNOWN_EMAIL)}
            for row in self._backend.select("influencers", order="created_at", descending=True)
        ]

    def create_influencer_for(self, user_id: str, name: str, template_id: str) -> dict[str, Any]:
        name = (name or "").strip()
        template_id = (template_id or "").strip()
        if not user_id or not name or not template_id:
            raise ValueError("user, name and template id are required")
        rows = self._backend.insert(
            "influencers", {"user_id": user_id, "name": name, "template_id": template_id}
        )
        return rows[0]
