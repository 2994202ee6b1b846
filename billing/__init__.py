from .subscriptions import (
    BillingError,
    Subscription,
    cancel_subscription,
    current_subscription,
    display_tier,
)

__all__ = [
    "BillingError",
    "Subscription",
    "cancel_subscription",
    "current_subscription",
    "display_tier",
]
