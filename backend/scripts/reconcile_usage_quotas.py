"""
Reconcile usage quota limits (run after changing the tier catalog)

Recomputes messages_limit / files_limit on every usage_quotas row of a period
from the current tier catalog. Usage counters and overrides are not touched.
Rows whose tier is no longer in the catalog are listed and left alone.

Usage (from backend/):
  python -m scripts.reconcile_usage_quotas
  python -m scripts.reconcile_usage_quotas --period 2025-05
  python -m scripts.reconcile_usage_quotas --period 2025-05 --dry-run
"""

import asyncio
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db_context
from entitlements.exceptions import EntitlementError
from entitlements.services.tier_catalog import DEFAULT_TIER_CATALOG
from entitlements.services.usage_periods import current_period, validate_period
from entitlements.services.usage_quota_store import usage_quota_store
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run(period: str, dry_run: bool) -> dict:
    async with get_db_context() as db:
        return await usage_quota_store.reconcile(db, period, DEFAULT_TIER_CATALOG, dry_run=dry_run)


def main():
    parser = argparse.ArgumentParser(description="Reconcile usage quota limits with the tier catalog")
    parser.add_argument("--period", default=None, help="Period to reconcile (YYYY-MM, default: current month)")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    args = parser.parse_args()

    period = args.period or current_period()
    try:
        validate_period(period)
    except EntitlementError as e:
        parser.error(e.message)

    logger.info(f"Reconciling usage_quotas for {period} against catalog {DEFAULT_TIER_CATALOG.version}")
    summary = asyncio.run(run(period, args.dry_run))

    print(f"\nReconcile {'preview ' if args.dry_run else ''}for {summary['period']} "
          f"(catalog {summary['catalog_version']})")
    print(f"  rows scanned: {summary['scanned']}")
    print(f"  rows {'to update' if args.dry_run else 'updated'}: {summary['updated']}")
    unknown = summary["unknown_tier_organizations"]
    if unknown:
        print(f"  skipped (unknown tier): {len(unknown)}")
        for organization_id in unknown:
            print(f"    - {organization_id}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
