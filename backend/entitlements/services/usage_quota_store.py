"""Usage Quota Store

Persistent per-organization, per-period counters in the usage_quotas
collection:
- Read / upsert limits / set overrides
- Atomic bounded increment (no read-then-write race)
- Reconcile sweep after tier catalog changes

The Motor database handle is passed into every call.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
import logging
import os

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from entitlements.exceptions import (
    InvalidArgumentError,
    PersistenceError,
    QuotaExceededError,
    QuotaNotInitializedError,
    UnknownTierError,
)
from entitlements.models.tiers import TierLimits, TierName, is_unlimited
from entitlements.models.usage import (
    LIMIT_FIELDS,
    OVERRIDE_FIELDS,
    USED_FIELDS,
    QuotaOverrides,
    UsageKind,
    UsageQuota,
    setting_to_stored,
)
from entitlements.services.tier_catalog import DEFAULT_TIER_CATALOG, TierCatalog
from entitlements.services.usage_periods import validate_period

logger = logging.getLogger(__name__)

USAGE_INCREMENT_MAX_ATTEMPTS = int(os.getenv("USAGE_INCREMENT_MAX_ATTEMPTS", "3"))


@asynccontextmanager
async def storage_operation(operation: str):
    """Translate driver failures into PersistenceError."""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"usage_quotas {operation} failed: {e}", exc_info=True)
        raise PersistenceError(operation, e) from e


def validate_organization_id(organization_id: str) -> str:
    if not isinstance(organization_id, str) or not organization_id.strip():
        raise InvalidArgumentError("organization_id", "must be a non-empty string")
    return organization_id


def validate_kind(kind: Union[UsageKind, str]) -> UsageKind:
    try:
        return UsageKind(kind)
    except ValueError:
        raise InvalidArgumentError("kind", f"expected one of: messages, files (got {kind!r})")


def _tier_value(tier_name: Optional[Union[TierName, str]]) -> Optional[str]:
    if tier_name is None:
        return None
    return tier_name.value if isinstance(tier_name, TierName) else str(tier_name)


class UsageQuotaStore:
    """Per-organization, per-period usage counters."""

    PROJECTION = {"_id": 0}

    def _key(self, organization_id: str, period: str) -> Dict[str, str]:
        return {"organization_id": organization_id, "period": period}

    async def get(self, db, organization_id: str, period: str) -> Optional[UsageQuota]:
        """Get the usage row, or None if the period has no usage yet."""
        validate_organization_id(organization_id)
        validate_period(period)

        async with storage_operation("get"):
            doc = await db.usage_quotas.find_one(self._key(organization_id, period), self.PROJECTION)
        return UsageQuota(**doc) if doc else None

    async def upsert_limits(
        self,
        db,
        organization_id: str,
        period: str,
        tier_limits: TierLimits,
        overrides: Optional[QuotaOverrides] = None,
        tier_name: Optional[Union[TierName, str]] = None,
    ) -> UsageQuota:
        """Create the row if absent, then apply tier defaults and overrides.

        Usage counters on an existing row are never reset. When overrides is
        None, existing override fields are left as they are (new rows start
        with none).
        """
        validate_organization_id(organization_id)
        validate_period(period)

        now = datetime.now(timezone.utc)
        set_fields: Dict[str, Any] = {
            "messages_limit": tier_limits.messages_per_month,
            "files_limit": tier_limits.files_per_month,
            "tier": _tier_value(tier_name),
            "last_updated": now,
        }
        # organization_id / period come from the upsert filter
        on_insert: Dict[str, Any] = {
            "messages_used": 0,
            "files_used": 0,
            "created_at": now,
        }
        for kind in UsageKind:
            if overrides is None:
                on_insert[OVERRIDE_FIELDS[kind]] = None
            else:
                set_fields[OVERRIDE_FIELDS[kind]] = setting_to_stored(overrides.for_kind(kind))

        async with storage_operation("upsert_limits"):
            try:
                doc = await self._upsert(db, organization_id, period, set_fields, on_insert)
            except DuplicateKeyError:
                # Lost a concurrent insert race; the row exists now
                doc = await self._upsert(db, organization_id, period, set_fields, on_insert)

        return UsageQuota(**doc)

    async def _upsert(self, db, organization_id, period, set_fields, on_insert) -> Dict[str, Any]:
        return await db.usage_quotas.find_one_and_update(
            self._key(organization_id, period),
            {"$set": set_fields, "$setOnInsert": on_insert},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            projection=self.PROJECTION,
        )

    async def set_overrides(
        self,
        db,
        organization_id: str,
        period: str,
        overrides: QuotaOverrides,
    ) -> UsageQuota:
        """Set or clear per-kind overrides on an existing row."""
        validate_organization_id(organization_id)
        validate_period(period)

        set_fields = {
            OVERRIDE_FIELDS[kind]: setting_to_stored(overrides.for_kind(kind))
            for kind in UsageKind
        }
        set_fields["last_updated"] = datetime.now(timezone.utc)

        async with storage_operation("set_overrides"):
            doc = await db.usage_quotas.find_one_and_update(
                self._key(organization_id, period),
                {"$set": set_fields},
                return_document=ReturnDocument.AFTER,
                projection=self.PROJECTION,
            )
        if not doc:
            raise QuotaNotInitializedError(organization_id, period)

        logger.info(
            f"Overrides set for {organization_id} {period}: "
            f"messages={set_fields['override_messages']} files={set_fields['override_files']}"
        )
        return UsageQuota(**doc)

    async def increment_usage(
        self,
        db,
        organization_id: str,
        period: str,
        kind: Union[UsageKind, str],
        amount: int = 1,
    ) -> UsageQuota:
        """Atomically add `amount` to the used-counter for `kind`.

        The write is a single conditional update: the filter pins the limit
        and override fields read from the row and bounds the counter at
        limit - amount. If the filter misses, the row is re-read; a counter
        past the bound means QuotaExceededError, changed limits mean another
        attempt.

        Raises:
            QuotaExceededError: post-increment value would exceed the effective limit
            QuotaNotInitializedError: no row for (organization, period)
            PersistenceError: storage failure or attempts exhausted
        """
        validate_organization_id(organization_id)
        validate_period(period)
        kind = validate_kind(kind)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidArgumentError("amount", "must be a positive integer")

        used_field = USED_FIELDS[kind]

        for attempt in range(1, USAGE_INCREMENT_MAX_ATTEMPTS + 1):
            row = await self.get(db, organization_id, period)
            if row is None:
                raise QuotaNotInitializedError(organization_id, period)

            used = row.used(kind)
            limit = row.effective_limit(kind)

            query: Dict[str, Any] = {
                **self._key(organization_id, period),
                LIMIT_FIELDS[kind]: row.default_limit(kind),
                OVERRIDE_FIELDS[kind]: setting_to_stored(row.override(kind)),
            }
            if not is_unlimited(limit):
                if used + amount > limit:
                    logger.info(
                        f"Quota exceeded for {organization_id} {period} {kind.value}: "
                        f"{used}+{amount} > {limit}"
                    )
                    raise QuotaExceededError(organization_id, period, kind.value, used, limit, amount)
                query[used_field] = {"$lte": limit - amount}

            async with storage_operation("increment_usage"):
                doc = await db.usage_quotas.find_one_and_update(
                    query,
                    {
                        "$inc": {used_field: amount},
                        "$set": {"last_updated": datetime.now(timezone.utc)},
                    },
                    return_document=ReturnDocument.AFTER,
                    projection=self.PROJECTION,
                )
            if doc:
                return UsageQuota(**doc)

            logger.debug(
                f"Conditional increment missed for {organization_id} {period} {kind.value} "
                f"(attempt {attempt}/{USAGE_INCREMENT_MAX_ATTEMPTS})"
            )

        logger.error(
            f"Increment for {organization_id} {period} {kind.value} gave up after "
            f"{USAGE_INCREMENT_MAX_ATTEMPTS} attempts (limits kept changing)"
        )
        raise PersistenceError("increment_usage")

    async def reconcile(
        self,
        db,
        period: str,
        catalog: TierCatalog = DEFAULT_TIER_CATALOG,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        """Recompute stored tier limits for every row in `period`.

        Usage counters and overrides are left untouched. Rows whose tier is no
        longer in the catalog are skipped and reported. With dry_run, `updated`
        counts the rows that would change and nothing is written.
        """
        validate_period(period)

        scanned = 0
        updated = 0
        unknown_tiers = []

        async with storage_operation("reconcile"):
            cursor = db.usage_quotas.find({"period": period}, self.PROJECTION)
            async for doc in cursor:
                scanned += 1
                try:
                    limits = catalog.resolve(doc.get("tier"))
                except UnknownTierError:
                    unknown_tiers.append(doc["organization_id"])
                    continue

                if (
                    doc.get("messages_limit") == limits.messages_per_month
                    and doc.get("files_limit") == limits.files_per_month
                ):
                    continue

                updated += 1
                if dry_run:
                    continue
                await db.usage_quotas.update_one(
                    self._key(doc["organization_id"], period),
                    {"$set": {
                        "messages_limit": limits.messages_per_month,
                        "files_limit": limits.files_per_month,
                        "last_updated": datetime.now(timezone.utc),
                    }},
                )

        logger.info(
            f"Reconciled usage_quotas for {period}{' (dry run)' if dry_run else ''} against catalog {catalog.version}: "
            f"scanned={scanned} updated={updated} unknown_tier={len(unknown_tiers)}"
        )
        return {
            "period": period,
            "catalog_version": catalog.version,
            "dry_run": dry_run,
            "scanned": scanned,
            "updated": updated,
            "unknown_tier_organizations": unknown_tiers,
        }


usage_quota_store = UsageQuotaStore()
