"""Entitlements Data Models"""

from .tiers import (
    TierName,
    TierLimits,
    PUBLIC_TIER,
    UNLIMITED,
    is_unlimited,
)
from .usage import (
    UsageKind,
    UsageQuota,
    UseDefault,
    Override,
    LimitSetting,
    DEFAULT,
    QuotaOverrides,
    QuotaMetric,
    QuotaInfo,
)
from .delivery import (
    DeliveryChannel,
    DeliveryStatus,
    DeliveryResultInput,
    DeliveryResult,
)
from .fees import (
    FeeTier,
    FeeTierResult,
    PovertyGuidelines,
    GUIDELINES_2025,
)
from .decisions import (
    EntitlementAction,
    Feature,
    DenialReason,
    Authorized,
    Denied,
    Decision,
)

__all__ = [
    # Tiers
    "TierName",
    "TierLimits",
    "PUBLIC_TIER",
    "UNLIMITED",
    "is_unlimited",
    # Usage
    "UsageKind",
    "UsageQuota",
    "UseDefault",
    "Override",
    "LimitSetting",
    "DEFAULT",
    "QuotaOverrides",
    "QuotaMetric",
    "QuotaInfo",
    # Delivery
    "DeliveryChannel",
    "DeliveryStatus",
    "DeliveryResultInput",
    "DeliveryResult",
    # Fees
    "FeeTier",
    "FeeTierResult",
    "PovertyGuidelines",
    "GUIDELINES_2025",
    # Decisions
    "EntitlementAction",
    "Feature",
    "DenialReason",
    "Authorized",
    "Denied",
    "Decision",
]
