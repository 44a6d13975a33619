"""Tier Models

A tier bundles fixed resource limits. -1 means unlimited for any count limit.
"""

from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

UNLIMITED = -1


class TierName(str, Enum):
    """Subscription tiers known to the catalog"""
    FREE = "free"
    PLUS = "plus"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"


PUBLIC_TIER = "public"


class TierLimits(BaseModel):
    """Immutable limit set for one tier."""
    messages_per_month: int = Field(..., ge=UNLIMITED)
    files_per_month: int = Field(..., ge=UNLIMITED)
    max_file_size_mb: int = Field(..., ge=0)
    api_access: bool = False
    team_members: int = Field(..., ge=UNLIMITED)

    model_config = ConfigDict(frozen=True)


def is_unlimited(limit: int) -> bool:
    """Any negative limit short-circuits to always authorized."""
    return limit < 0
