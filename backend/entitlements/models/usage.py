"""Usage Quota Models

One usage_quotas document per (organization_id, period). Counters only grow
within a period; a new period gets a fresh document.

Overrides are modelled as an explicit sum type so precedence is never a
silent None-coalesce:
- UseDefault()        -> tier catalog limit applies
- Override(value=50)  -> 50 applies, whatever the tier says
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from .tiers import is_unlimited


class UsageKind(str, Enum):
    """Consumable allotments tracked per period"""
    MESSAGES = "messages"
    FILES = "files"


@dataclass(frozen=True)
class UseDefault:
    """No override: the stored tier limit applies."""


@dataclass(frozen=True)
class Override:
    """Organization-specific limit that supersedes the tier default."""
    value: int

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError("Override value must be an int")


LimitSetting = Union[UseDefault, Override]

DEFAULT = UseDefault()


def setting_from_stored(value: Optional[int]) -> LimitSetting:
    """Map a nullable override column to the sum type."""
    return DEFAULT if value is None else Override(int(value))


def setting_to_stored(setting: LimitSetting) -> Optional[int]:
    if isinstance(setting, Override):
        return setting.value
    if isinstance(setting, UseDefault):
        return None
    raise TypeError(f"Unsupported limit setting: {setting!r}")


@dataclass(frozen=True)
class QuotaOverrides:
    """Per-kind override settings written by upsert_limits / set_overrides."""
    messages: LimitSetting = DEFAULT
    files: LimitSetting = DEFAULT

    def for_kind(self, kind: "UsageKind") -> LimitSetting:
        return self.messages if kind == UsageKind.MESSAGES else self.files


# Document field names per kind
USED_FIELDS = {UsageKind.MESSAGES: "messages_used", UsageKind.FILES: "files_used"}
LIMIT_FIELDS = {UsageKind.MESSAGES: "messages_limit", UsageKind.FILES: "files_limit"}
OVERRIDE_FIELDS = {UsageKind.MESSAGES: "override_messages", UsageKind.FILES: "override_files"}


class UsageQuota(BaseModel):
    """Usage counters and limits for one organization in one period."""
    organization_id: str
    period: str  # YYYY-MM
    tier: Optional[str] = None  # None -> public limits

    messages_used: int = 0
    messages_limit: int
    override_messages: Optional[int] = None

    files_used: int = 0
    files_limit: int
    override_files: Optional[int] = None

    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}

    def used(self, kind: UsageKind) -> int:
        return getattr(self, USED_FIELDS[kind])

    def default_limit(self, kind: UsageKind) -> int:
        return getattr(self, LIMIT_FIELDS[kind])

    def override(self, kind: UsageKind) -> LimitSetting:
        return setting_from_stored(getattr(self, OVERRIDE_FIELDS[kind]))

    def effective_limit(self, kind: UsageKind) -> int:
        """Override wins over the stored tier default."""
        return resolve_limit(self.override(kind), self.default_limit(kind))


def resolve_limit(setting: LimitSetting, default_limit: int) -> int:
    if isinstance(setting, Override):
        return setting.value
    return default_limit


class QuotaMetric(BaseModel):
    """Remaining-quota view of a single kind"""
    used: int
    limit: int  # 0 when unlimited
    remaining: Optional[int] = None  # None when unlimited
    unlimited: bool = False

    @classmethod
    def from_counts(cls, used: int, limit: int) -> "QuotaMetric":
        if is_unlimited(limit):
            return cls(used=used, limit=0, remaining=None, unlimited=True)
        return cls(used=used, limit=limit, remaining=max(limit - used, 0), unlimited=False)


class QuotaInfo(BaseModel):
    """Usage snapshot for UI or API responses."""
    organization_id: str
    period: str
    messages: QuotaMetric
    files: QuotaMetric
    reset_date: datetime
    tier: str
