"""Tier Catalog - static limits per subscription tier.

The catalog is a read-only configuration value. Services receive it as an
argument (defaulting to DEFAULT_TIER_CATALOG) so tests and reconcile runs can
substitute an alternate table. Changing a tier's limits mid-period requires a
UsageQuotaStore.reconcile sweep; there is no runtime mutation path.

Tier Structure:
- free:       100 messages, 10 files / month, 10 MB files, 1 seat
- plus:       500 messages, 50 files / month, 25 MB files, 5 seats
- business:   1000 messages, 200 files / month, 50 MB files, API, 25 seats
- enterprise: unlimited messages / files, 100 MB files, API, unlimited seats
- public:     everything zero (blocks anonymous abuse)
"""
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union
import logging

from entitlements.exceptions import UnknownTierError
from entitlements.models.tiers import TierLimits, TierName, UNLIMITED

logger = logging.getLogger(__name__)


# ============================================================================
# TIER LIMITS - version 2025-05
# ============================================================================
TIER_LIMITS: Dict[TierName, TierLimits] = {
    TierName.FREE: TierLimits(
        messages_per_month=100,
        files_per_month=10,
        max_file_size_mb=10,
        api_access=False,
        team_members=1,
    ),
    TierName.PLUS: TierLimits(
        messages_per_month=500,
        files_per_month=50,
        max_file_size_mb=25,
        api_access=False,
        team_members=5,
    ),
    TierName.BUSINESS: TierLimits(
        messages_per_month=1000,
        files_per_month=200,
        max_file_size_mb=50,
        api_access=True,
        team_members=25,
    ),
    TierName.ENTERPRISE: TierLimits(
        messages_per_month=UNLIMITED,
        files_per_month=UNLIMITED,
        max_file_size_mb=100,
        api_access=True,
        team_members=UNLIMITED,
    ),
}

PUBLIC_LIMITS = TierLimits(
    messages_per_month=0,
    files_per_month=0,
    max_file_size_mb=0,
    api_access=False,
    team_members=0,
)


class TierCatalog:
    """Immutable lookup of tier name -> TierLimits."""

    def __init__(
        self,
        limits: Mapping[Union[TierName, str], TierLimits],
        public_limits: TierLimits = PUBLIC_LIMITS,
        version: str = "custom",
    ):
        self._limits = MappingProxyType({self._key(name): value for name, value in limits.items()})
        self._public = public_limits
        self.version = version

    @staticmethod
    def _key(name: Union[TierName, str]) -> str:
        return name.value if isinstance(name, TierName) else str(name)

    @property
    def tier_names(self) -> List[str]:
        return list(self._limits.keys())

    def is_known(self, tier_name: object) -> bool:
        if isinstance(tier_name, TierName):
            tier_name = tier_name.value
        return isinstance(tier_name, str) and tier_name in self._limits

    def limits_for(self, tier_name: Union[TierName, str]) -> TierLimits:
        """Get limits for a tier. Raises UnknownTierError if not in the catalog."""
        key = tier_name.value if isinstance(tier_name, TierName) else tier_name
        if not isinstance(key, str) or key not in self._limits:
            logger.error(f"Tier catalog {self.version} has no tier {tier_name!r}")
            raise UnknownTierError(tier_name, known=self.tier_names)
        return self._limits[key]

    def public_limits(self) -> TierLimits:
        """Limit set for organizations without a tier (anonymous/public)."""
        return self._public

    def resolve(self, tier_name: Optional[Union[TierName, str]]) -> TierLimits:
        """Tier limits, or the public fallback when no tier is assigned."""
        if tier_name is None:
            return self._public
        return self.limits_for(tier_name)


DEFAULT_TIER_CATALOG = TierCatalog(TIER_LIMITS, PUBLIC_LIMITS, version="2025-05")
