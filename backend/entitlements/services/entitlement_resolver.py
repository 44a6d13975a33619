"""Entitlement Resolver - authorize guarded actions against tier limits and usage.

Flow per request:
1. Resolve effective limits: override > tier catalog default > public fallback
2. upload_file: reject files above max_file_size_mb (FileTooLarge)
3. Compare current usage with the effective limit (QuotaExceeded)

Plan features (API access, team seats) have no monthly counter and are
decided by check_feature() from the tier limits alone.

check() never writes. Callers run the guarded action and only then call
commit(), so an action that fails after authorization leaves the counters
untouched.
"""
from numbers import Real
from typing import Optional, Tuple, Union
import logging
import math

from entitlements.exceptions import InvalidArgumentError
from entitlements.models.decisions import (
    ACTION_USAGE_KIND,
    Authorized,
    Decision,
    DenialReason,
    Denied,
    EntitlementAction,
    Feature,
)
from entitlements.models.tiers import PUBLIC_TIER, UNLIMITED, TierLimits, TierName, is_unlimited
from entitlements.models.usage import (
    QuotaInfo,
    QuotaMetric,
    UsageKind,
    UsageQuota,
    resolve_limit,
)
from entitlements.services.tier_catalog import DEFAULT_TIER_CATALOG, TierCatalog
from entitlements.services.usage_periods import period_reset_date, validate_period
from entitlements.services.usage_quota_store import (
    UsageQuotaStore,
    usage_quota_store,
    validate_organization_id,
)

logger = logging.getLogger(__name__)

TierArg = Optional[Union[TierName, str]]

TIER_LIMIT_ATTRS = {
    UsageKind.MESSAGES: "messages_per_month",
    UsageKind.FILES: "files_per_month",
}


def tier_default(tier_limits: TierLimits, kind: UsageKind) -> int:
    return getattr(tier_limits, TIER_LIMIT_ATTRS[kind])


def _validate_action(action: Union[EntitlementAction, str]) -> EntitlementAction:
    try:
        return EntitlementAction(action)
    except ValueError:
        raise InvalidArgumentError("action", f"expected send_message or upload_file (got {action!r})")


def _validate_file_size(file_size_mb) -> float:
    if file_size_mb is None:
        raise InvalidArgumentError("file_size_mb", "required for upload_file")
    if isinstance(file_size_mb, bool) or not isinstance(file_size_mb, Real):
        raise InvalidArgumentError("file_size_mb", "must be a number")
    if not math.isfinite(file_size_mb) or file_size_mb < 0:
        raise InvalidArgumentError("file_size_mb", "must be a finite, non-negative number")
    return file_size_mb


def _tier_label(tier_name: TierArg) -> str:
    if tier_name is None:
        return PUBLIC_TIER
    return tier_name.value if isinstance(tier_name, TierName) else tier_name


def _validate_feature(feature: Union[Feature, str]) -> Feature:
    try:
        return Feature(feature)
    except ValueError:
        raise InvalidArgumentError("feature", f"expected api or team (got {feature!r})")


def _validate_seats(seats_requested) -> int:
    if seats_requested is None:
        return 1
    if isinstance(seats_requested, bool) or not isinstance(seats_requested, int) or seats_requested < 1:
        raise InvalidArgumentError("seats_requested", "must be a positive integer")
    return seats_requested


def _minimum_tier_with_api(catalog: TierCatalog) -> Optional[str]:
    for name in catalog.tier_names:
        if catalog.limits_for(name).api_access:
            return name
    return None


class EntitlementResolver:
    """Composition root: catalog + stored overrides + usage -> decision."""

    def __init__(self, store: UsageQuotaStore = usage_quota_store):
        self._store = store

    async def _resolve(
        self,
        db,
        organization_id: str,
        period: str,
        tier_name: TierArg,
        catalog: TierCatalog,
    ) -> Tuple[TierLimits, Optional[UsageQuota]]:
        validate_organization_id(organization_id)
        validate_period(period)
        tier_limits = catalog.resolve(tier_name)
        row = await self._store.get(db, organization_id, period)
        return tier_limits, row

    @staticmethod
    def _usage_and_limit(tier_limits: TierLimits, row: Optional[UsageQuota], kind: UsageKind) -> Tuple[int, int]:
        if row is None:
            return 0, tier_default(tier_limits, kind)
        return row.used(kind), resolve_limit(row.override(kind), tier_default(tier_limits, kind))

    async def check(
        self,
        db,
        organization_id: str,
        period: str,
        tier_name: TierArg,
        action: Union[EntitlementAction, str],
        file_size_mb: Optional[float] = None,
        catalog: TierCatalog = DEFAULT_TIER_CATALOG,
    ) -> Decision:
        """Decide whether `action` is within the organization's entitlements.

        Returns Authorized(remaining) or Denied(reason). Performs no mutation.
        """
        action = _validate_action(action)
        if action == EntitlementAction.UPLOAD_FILE:
            file_size_mb = _validate_file_size(file_size_mb)

        tier_limits, row = await self._resolve(db, organization_id, period, tier_name, catalog)
        kind = ACTION_USAGE_KIND[action]
        used, limit = self._usage_and_limit(tier_limits, row, kind)

        if action == EntitlementAction.UPLOAD_FILE and file_size_mb > tier_limits.max_file_size_mb:
            logger.info(
                f"Denied upload for {organization_id}: {file_size_mb}MB > {tier_limits.max_file_size_mb}MB"
            )
            return Denied(
                reason=DenialReason.FILE_TOO_LARGE,
                kind=kind,
                used=file_size_mb,
                limit=tier_limits.max_file_size_mb,
                message=f"File exceeds the {tier_limits.max_file_size_mb} MB limit for your plan. Please reduce the file size.",
            )

        if is_unlimited(limit):
            return Authorized(kind=kind, remaining=None, limit=limit)

        if used >= limit:
            logger.info(f"Denied {action.value} for {organization_id} {period}: {used}/{limit} {kind.value} used")
            return Denied(
                reason=DenialReason.QUOTA_EXCEEDED,
                kind=kind,
                used=used,
                limit=limit,
                message=f"{kind.value.capitalize()} limit reached. Please upgrade your plan.",
            )

        return Authorized(kind=kind, remaining=limit - used, limit=limit)

    async def commit(
        self,
        db,
        organization_id: str,
        period: str,
        tier_name: TierArg,
        action: Union[EntitlementAction, str],
        catalog: TierCatalog = DEFAULT_TIER_CATALOG,
    ) -> UsageQuota:
        """Record one unit of usage after the guarded action succeeded.

        Creates the period row on first use and keeps its stored tier limits in
        line with the catalog; overrides are never touched here.
        """
        action = _validate_action(action)
        tier_limits, row = await self._resolve(db, organization_id, period, tier_name, catalog)
        tier_value = None if tier_name is None else _tier_label(tier_name)

        if (
            row is None
            or row.tier != tier_value
            or row.messages_limit != tier_limits.messages_per_month
            or row.files_limit != tier_limits.files_per_month
        ):
            await self._store.upsert_limits(
                db, organization_id, period, tier_limits, overrides=None, tier_name=tier_value
            )

        return await self._store.increment_usage(
            db, organization_id, period, ACTION_USAGE_KIND[action], 1
        )

    def check_feature(
        self,
        tier_name: TierArg,
        feature: Union[Feature, str],
        seats_requested: Optional[int] = None,
        catalog: TierCatalog = DEFAULT_TIER_CATALOG,
    ) -> Decision:
        """Decide whether the tier includes a plan feature.

        api: allowed when the tier has api_access.
        team: seats_requested is the total member count the organization
        would have (default 1); allowed while it stays within team_members.
        """
        feature = _validate_feature(feature)
        seats = _validate_seats(seats_requested) if feature == Feature.TEAM else None
        tier_limits = catalog.resolve(tier_name)
        tier = _tier_label(tier_name)

        if feature == Feature.API:
            if tier_limits.api_access:
                return Authorized(kind=feature, remaining=None, limit=UNLIMITED)
            min_tier = _minimum_tier_with_api(catalog)
            if min_tier:
                message = f"API access requires the {min_tier} plan or higher. Please upgrade your plan."
            else:
                message = "API access is not available on your current plan."
            logger.info(f"Denied api access for tier {tier}")
            return Denied(
                reason=DenialReason.FEATURE_NOT_IN_PLAN,
                kind=feature,
                used=0,
                limit=0,
                message=message,
            )

        limit = tier_limits.team_members
        if is_unlimited(limit):
            return Authorized(kind=feature, remaining=None, limit=limit)
        if seats > limit:
            logger.info(f"Denied {seats} team seats for tier {tier}: limit {limit}")
            return Denied(
                reason=DenialReason.TEAM_LIMIT_REACHED,
                kind=feature,
                used=seats,
                limit=limit,
                message=f"Your plan allows {limit} team members. Please upgrade your plan.",
            )
        return Authorized(kind=feature, remaining=limit - seats, limit=limit)

    async def quota_info(
        self,
        db,
        organization_id: str,
        period: str,
        tier_name: TierArg,
        catalog: TierCatalog = DEFAULT_TIER_CATALOG,
    ) -> QuotaInfo:
        """Remaining quota per kind, for UI and API responses. Read-only."""
        tier_limits, row = await self._resolve(db, organization_id, period, tier_name, catalog)

        metrics = {}
        for kind in UsageKind:
            used, limit = self._usage_and_limit(tier_limits, row, kind)
            metrics[kind.value] = QuotaMetric.from_counts(used, limit)

        return QuotaInfo(
            organization_id=organization_id,
            period=period,
            messages=metrics[UsageKind.MESSAGES.value],
            files=metrics[UsageKind.FILES.value],
            reset_date=period_reset_date(period),
            tier=_tier_label(tier_name),
        )


entitlement_resolver = EntitlementResolver()
