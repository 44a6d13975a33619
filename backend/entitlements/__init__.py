"""
Entitlements - Usage Quotas, Tier Limits and Fee Tiers
======================================================

Server-side accounting for what a practice organization may do this month.

Scope:
- Tier catalog (free / plus / business / enterprise + public fallback)
- Monthly usage counters per organization (messages, files)
- Per-organization overrides that supersede tier defaults
- Check / commit split for guarded actions
- Federal poverty line fee tier calculation
- Append-only notification delivery audit trail

RULES:
- Backend is authoritative - every quota check happens server-side
- Usage counters never decrease inside a period
- The storage handle is passed into every call, never cached
"""

__version__ = "1.0.0"
__product__ = "Entitlements"
