from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlencode

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULING_URL = "https://calendly.com/bazilsb7"


@dataclass(frozen=True)
class PricingTier:
    name: str
    price: float
    features: tuple[str, ...] = field(default_factory=tuple)
    duration: str = "/month"
    link: str | None = None
    price_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "features": list(self.features),
            "duration": self.duration,
            "link": self.link,
            "price_id": self.price_id,
        }


DEFAULT_TIERS: tuple[PricingTier, ...] = (
    PricingTier(
        name="Free",
        price=0,
        features=("Access to basic features", "Limited API calls", "Community support"),
    ),
    PricingTier(
        name="Basic",
        price=30,
        features=("All Free plan features", "Increased API calls", "Email support"),
        link="https://buy.stripe.com/test_14kcPLfK62pr9pu3cc",
        price_id="price_1QShokFK63VyJS7h2XWMMXkM",
    ),
    PricingTier(
        name="Pro",
        price=60,
        features=(
            "All Basic plan features",
            "Unlimited API calls",
            "Priority support",
            "Access to premium features",
        ),
        link="https://buy.stripe.com/test_dR6aHD55s2pr59efYZ",
        price_id="price_1QbgQjFK63VyJS7h8TWavrrG",
    ),
)


def _tier_from_mapping(data: dict[str, Any]) -> PricingTier:
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValueError("pricing tier requires a name")
    return PricingTier(
        name=name,
        price=float(data.get("price") or 0),
        features=tuple(str(item) for item in data.get("features") or ()),
        duration=str(data.get("duration") or "/month"),
        link=data.get("link") or None,
        price_id=data.get("price_id") or None,
    )


def load_catalog(path: str | Path | None = None) -> tuple[PricingTier, ...]:
    """Pricing tiers from ``PLAN_CATALOG_FILE`` (YAML), or the built-in ones."""
    source = path or os.getenv("PLAN_CATALOG_FILE", "").strip()
    if not source:
        return DEFAULT_TIERS
    payload = yaml.safe_load(Path(source).read_text(encoding="utf-8")) or {}
    tiers = payload.get("tiers") if isinstance(payload, dict) else payload
    if not isinstance(tiers, list) or not tiers:
        raise ValueError(f"{source}: expected a non-empty list of tiers")
    logger.info("loaded %d pricing tiers from %s", len(tiers), source)
    return tuple(_tier_from_mapping(item) for item in tiers)


@lru_cache(maxsize=1)
def get_catalog() -> tuple[PricingTier, ...]:
    return load_catalog()


def find_tier(name: str, catalog: tuple[PricingTier, ...] | None = None) -> PricingTier | None:
    wanted = (name or "").strip().lower()
    for tier in catalog or get_catalog():
        if tier.name.lower() == wanted:
            return tier
    return None


def checkout_url(tier_name: str, email: str, catalog: tuple[PricingTier, ...] | None = None) -> str | None:
    """Hosted checkout link for a paid tier with the email prefilled."""
    tier = find_tier(tier_name, catalog)
    if tier is None:
        raise ValueError(f"unknown plan: {tier_name}")
    if not tier.link:
        return None
    query = urlencode({"prefilled_email": email}, quote_via=quote)
    return f"{tier.link}?{query}"


def scheduling_url(title: str, description: str) -> str:
    base = os.getenv("CALENDLY_URL", DEFAULT_SCHEDULING_URL).strip().rstrip("?")
    query = urlencode({"customTitle": title, "customDescription": description}, quote_via=quote)
    return f"{base}?{query}"
