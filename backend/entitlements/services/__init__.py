"""Entitlements Services"""

from .tier_catalog import TierCatalog, DEFAULT_TIER_CATALOG
from .usage_quota_store import UsageQuotaStore, usage_quota_store
from .delivery_recorder import NotificationDeliveryRecorder, notification_delivery_recorder
from .entitlement_resolver import EntitlementResolver, entitlement_resolver
from . import poverty_calculator

__all__ = [
    "TierCatalog",
    "DEFAULT_TIER_CATALOG",
    "UsageQuotaStore",
    "usage_quota_store",
    "NotificationDeliveryRecorder",
    "notification_delivery_recorder",
    "EntitlementResolver",
    "entitlement_resolver",
    "poverty_calculator",
]
