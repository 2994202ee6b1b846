from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os

from backend import BackendError, DataBackend
from backend.http import HTTPCallError, build_url, request_json

logger = logging.getLogger(__name__)

FREE_TIER = "Free"
CANCEL_FAILED = "Failed to cancel subscription"


@dataclass(eq=False)
class BillingError(Exception):
    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(frozen=True)
class Subscription:
    tier: str
    subscription_id: str | None = None


def billing_service_url() -> str:
    return os.getenv("BILLING_SERVICE_URL", "http://localhost:5002").strip().rstrip("/")


def display_tier(tier: str | None) -> str:
    tier = (tier or "").strip()
    if not tier:
        return FREE_TIER
    return tier[0].upper() + tier[1:]


def current_subscription(backend: DataBackend, email: str) -> Subscription:
    try:
        row = backend.select_one("users", columns="tier,subscription_id", filters={"email": email})
    except BackendError as exc:
        if exc.code != "not_found":
            raise
        logger.warning("no user row for %s, defaulting to %s", email, FREE_TIER)
        return Subscription(FREE_TIER)
    return Subscription(display_tier(row.get("tier")), row.get("subscription_id"))


def _service_error(detail: str) -> str:
    try:
        body = json.loads(detail)
    except ValueError:
        return CANCEL_FAILED
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return CANCEL_FAILED


def cancel_subscription(email: str, subscription_id: str | None) -> Subscription:
    """Cancel through the billing service; the user drops back to the free tier."""
    if not email:
        raise ValueError("email is required")
    url = build_url(billing_service_url(), "/api/stripe/cancel-subscription")
    try:
        request_json("POST", url, payload={"email": email, "subId": subscription_id})
    except HTTPCallError as exc:
        logger.error("cancelling subscription for %s failed: %s", email, exc)
        message = _service_error(exc.detail) if exc.status else CANCEL_FAILED
        raise BillingError(code=exc.code, message=message) from exc
    logger.info("subscription %s for %s cancelled", subscription_id, email)
    return Subscription(FREE_TIER)
