"""Usage & Entitlement Routes

Endpoints:
- GET /api/usage/{organization_id} - Remaining quota for a period
- POST /api/usage/check - Authorize an action (no side effects)
- POST /api/usage/commit - Record usage after the action succeeded
- POST /api/usage/feature-check - Authorize a plan feature (API access, team seats)
- PUT /api/usage/{organization_id}/overrides - Set or clear per-org overrides

Tier names come from the caller's subscription record. An unknown tier in a
request is the caller's mistake and answers 400.
"""

from fastapi import APIRouter, HTTPException, Query
from typing import Optional, Union
from pydantic import BaseModel, Field
import logging

from database import database
from entitlements.exceptions import UnknownTierError
from entitlements.models.decisions import Authorized, Decision, DenialReason, EntitlementAction, Feature
from entitlements.models.usage import (
    DEFAULT,
    Override,
    QuotaInfo,
    QuotaOverrides,
    UsageKind,
    UsageQuota,
)
from entitlements.services.entitlement_resolver import entitlement_resolver
from entitlements.services.usage_periods import current_period
from entitlements.services.usage_quota_store import usage_quota_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/usage", tags=["Usage"])


class CheckRequest(BaseModel):
    organization_id: str
    period: Optional[str] = None  # defaults to the current month
    tier: Optional[str] = None  # None -> public limits
    action: EntitlementAction
    file_size_mb: Optional[float] = None


class FeatureCheckRequest(BaseModel):
    tier: Optional[str] = None  # None -> public limits
    feature: Feature
    seats_requested: Optional[int] = None  # team only; total members after the change


class CheckResponse(BaseModel):
    authorized: bool
    kind: Union[UsageKind, Feature]
    limit: int
    remaining: Optional[int] = None
    reason: Optional[DenialReason] = None
    used: Optional[Union[int, float]] = None
    message: Optional[str] = None


class CommitRequest(BaseModel):
    organization_id: str
    period: Optional[str] = None
    tier: Optional[str] = None
    action: EntitlementAction


class OverridesRequest(BaseModel):
    """null clears the override for that kind; -1 means unlimited."""
    period: Optional[str] = None
    messages: Optional[int] = Field(None, ge=-1)
    files: Optional[int] = Field(None, ge=-1)


def _bad_tier(e: UnknownTierError) -> HTTPException:
    logger.warning(f"Rejected request with unknown tier {e.tier_name!r}")
    return HTTPException(status_code=400, detail=e.message)


def _decision_response(decision: Decision) -> CheckResponse:
    if isinstance(decision, Authorized):
        return CheckResponse(
            authorized=True,
            kind=decision.kind,
            limit=decision.limit,
            remaining=decision.remaining,
        )
    return CheckResponse(
        authorized=False,
        kind=decision.kind,
        limit=decision.limit,
        reason=decision.reason,
        used=decision.used,
        message=decision.message,
    )


@router.get("/{organization_id}", response_model=QuotaInfo)
async def get_quota_info(
    organization_id: str,
    period: Optional[str] = Query(None, description="YYYY-MM, defaults to current month"),
    tier: Optional[str] = None,
):
    """Get used / limit / remaining per kind and the reset date."""
    db = database.get_db()
    try:
        return await entitlement_resolver.quota_info(
            db, organization_id, period or current_period(), tier
        )
    except UnknownTierError as e:
        raise _bad_tier(e)


@router.post("/check", response_model=CheckResponse)
async def check_entitlement(request: CheckRequest):
    """Authorize a guarded action.

    Denials are normal answers (200 with authorized=false), not errors.
    """
    db = database.get_db()
    try:
        decision = await entitlement_resolver.check(
            db,
            request.organization_id,
            request.period or current_period(),
            request.tier,
            request.action,
            file_size_mb=request.file_size_mb,
        )
    except UnknownTierError as e:
        raise _bad_tier(e)

    return _decision_response(decision)


@router.post("/feature-check", response_model=CheckResponse)
async def check_feature(request: FeatureCheckRequest):
    """Authorize a plan feature (API access or team seats) for a tier."""
    try:
        decision = entitlement_resolver.check_feature(
            request.tier, request.feature, seats_requested=request.seats_requested
        )
    except UnknownTierError as e:
        raise _bad_tier(e)

    return _decision_response(decision)


@router.post("/commit", response_model=UsageQuota)
async def commit_usage(request: CommitRequest):
    """Record one unit of usage. 402 if the quota filled up in the meantime."""
    db = database.get_db()
    try:
        return await entitlement_resolver.commit(
            db,
            request.organization_id,
            request.period or current_period(),
            request.tier,
            request.action,
        )
    except UnknownTierError as e:
        raise _bad_tier(e)


@router.put("/{organization_id}/overrides", response_model=UsageQuota)
async def set_overrides(organization_id: str, request: OverridesRequest):
    """Set or clear overrides on an existing period row (409 if none yet)."""
    db = database.get_db()
    overrides = QuotaOverrides(
        messages=DEFAULT if request.messages is None else Override(request.messages),
        files=DEFAULT if request.files is None else Override(request.files),
    )
    return await usage_quota_store.set_overrides(
        db, organization_id, request.period or current_period(), overrides
    )
