"""Plan quotas versus recorded usage.

Quota columns on ``plans`` are stored inconsistently: bare numbers, numeric
strings, or JSON text such as ``{"limit": 5}`` / ``{"enabled": true}``. The
decoders below accept all of them; anything unreadable counts as ``0`` (or
``False`` for feature flags). A limit of ``-1`` means unlimited.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import math
import re
from typing import Any, Literal

from backend import BackendError, DataBackend

logger = logging.getLogger(__name__)

UNLIMITED = -1
FETCH_ERROR = "Failed to fetch plan limits"

Feature = Literal["avatars", "ai_cloning", "video_creation"]

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def _parse_json(value: Any) -> tuple[Any, bool]:
    if value is None or isinstance(value, (dict, list, bool, int, float)):
        return value, True
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return None, False
    try:
        return json.loads(value), True
    except ValueError:
        return None, False


def decode_limit(value: Any) -> int:
    parsed, ok = _parse_json(value)
    if not ok:
        return coerce_int(value) or 0
    if isinstance(parsed, dict):
        return coerce_int(parsed.get("limit")) or 0
    return coerce_int(parsed) or 0


def decode_flag(value: Any) -> bool:
    parsed, ok = _parse_json(value)
    if not ok:
        return False
    if isinstance(parsed, dict):
        return bool(parsed.get("enabled", False))
    if isinstance(parsed, bool):
        return parsed
    if isinstance(parsed, (int, float)):
        return parsed != 0
    return False


@dataclass(frozen=True)
class FeatureQuota:
    limit: int = 0
    used: int = 0

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> int | None:
        if self.unlimited:
            return None
        return max(0, self.limit - self.used)

    @property
    def within_quota(self) -> bool:
        return self.unlimited or self.used < self.limit

    def can_consume(self, amount: int = 1) -> bool:
        return self.unlimited or self.used + amount <= self.limit


@dataclass(frozen=True)
class PlanLimits:
    avatars: FeatureQuota = field(default_factory=FeatureQuota)
    ai_cloning: FeatureQuota = field(default_factory=FeatureQuota)
    video_creation: FeatureQuota = field(default_factory=FeatureQuota)
    automations_enabled: bool = False
    ai_editing_enabled: bool = False
    tier: str | None = None
    plan_id: int | None = None
    loading: bool = True
    error: str | None = None

    def quota(self, feature: Feature) -> FeatureQuota:
        return getattr(self, feature)

    def as_dict(self) -> dict[str, Any]:
        def pair(quota: FeatureQuota) -> dict[str, Any]:
            return {
                "limit": quota.limit,
                "used": quota.used,
                "remaining": quota.remaining,
                "unlimited": quota.unlimited,
            }

        return {
            "avatars": pair(self.avatars),
            "ai_cloning": pair(self.ai_cloning),
            "video_creation": pair(self.video_creation),
            "automations_enabled": self.automations_enabled,
            "ai_editing_enabled": self.ai_editing_enabled,
            "tier": self.tier,
            "plan_id": self.plan_id,
            "loading": self.loading,
            "error": self.error,
        }


@dataclass(eq=False)
class QuotaExceeded(Exception):
    feature: str
    limit: int
    used: int

    def __str__(self) -> str:
        return f"{self.feature} quota reached ({self.used}/{self.limit})"


def require_quota(limits: PlanLimits, feature: Feature, amount: int = 1) -> None:
    quota = limits.quota(feature)
    if not quota.can_consume(amount):
        raise QuotaExceeded(feature=feature, limit=quota.limit, used=quota.used)


def _count(value: Any) -> int:
    return coerce_int(value) or 0


class PlanLimitResolver:
    def __init__(self, backend: DataBackend) -> None:
        self._backend = backend

    def resolve(self, email: str, user_id: str) -> PlanLimits:
        try:
            user = self._backend.select_one(
                "users", columns="current_plan,tier", filters={"email": email}
            )
            if not user.get("current_plan"):
                return PlanLimits(tier=user.get("tier"), loading=False)
            plan = self._backend.select_one(
                "plans",
                columns="id,avatars,ai_cloning,automations,video_creation,ai_editing",
                filters={"id": user["current_plan"]},
            )
            usage = self._backend.select_one(
                "user_usage",
                columns="avatars_created,ai_clone_created,automation,videos_created",
                filters={"user_id": user_id},
            )
        except BackendError as exc:
            logger.error("error fetching plan limits for %s: %s", email, exc)
            return PlanLimits(loading=False, error=FETCH_ERROR)

        return PlanLimits(
            avatars=FeatureQuota(decode_limit(plan.get("avatars")), _count(usage.get("avatars_created"))),
            ai_cloning=FeatureQuota(
                decode_limit(plan.get("ai_cloning")), _count(usage.get("ai_clone_created"))
            ),
            video_creation=FeatureQuota(
                decode_limit(plan.get("video_creation")), _count(usage.get("videos_created"))
            ),
            automations_enabled=decode_flag(plan.get("automations")),
            ai_editing_enabled=decode_flag(plan.get("ai_editing")),
            tier=user.get("tier"),
            plan_id=coerce_int(plan.get("id")),
            loading=False,
        )
