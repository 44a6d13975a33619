"""Authorization decision models returned by the entitlement resolver."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .usage import UsageKind


class EntitlementAction(str, Enum):
    SEND_MESSAGE = "send_message"
    UPLOAD_FILE = "upload_file"


# Which counter an action consumes
ACTION_USAGE_KIND = {
    EntitlementAction.SEND_MESSAGE: UsageKind.MESSAGES,
    EntitlementAction.UPLOAD_FILE: UsageKind.FILES,
}


class Feature(str, Enum):
    """Plan features gated by tier, not by a monthly counter"""
    API = "api"
    TEAM = "team"


class DenialReason(str, Enum):
    QUOTA_EXCEEDED = "QuotaExceeded"        # remediation: upgrade plan
    FILE_TOO_LARGE = "FileTooLarge"         # remediation: reduce file size
    FEATURE_NOT_IN_PLAN = "FeatureNotInPlan"
    TEAM_LIMIT_REACHED = "TeamLimitReached"


@dataclass(frozen=True)
class Authorized:
    """Action is within quota. remaining is None when the limit is unlimited."""
    kind: Union[UsageKind, Feature]
    remaining: Optional[int]
    limit: int

    authorized = True


@dataclass(frozen=True)
class Denied:
    reason: DenialReason
    kind: Union[UsageKind, Feature]
    used: Union[int, float]  # counter value, seat count, or file size in MB for FileTooLarge
    limit: int
    message: str

    authorized = False


Decision = Union[Authorized, Denied]
