from .limits import (
    FeatureQuota,
    PlanLimitResolver,
    PlanLimits,
    QuotaExceeded,
    decode_flag,
    decode_limit,
    require_quota,
)

__all__ = [
    "FeatureQuota",
    "PlanLimitResolver",
    "PlanLimits",
    "QuotaExceeded",
    "decode_flag",
    "decode_limit",
    "require_quota",
]
