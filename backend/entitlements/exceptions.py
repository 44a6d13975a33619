"""Entitlement error taxonomy.

Each error carries a stable error_code and the HTTP status the API layer
should answer with. Quota and file-size denials are business outcomes, not
defects; PersistenceError is the only retryable class and the engine never
retries it itself.
"""
from typing import Optional


class EntitlementError(Exception):
    """Base class for all entitlement engine errors."""
    error_code = "ENTITLEMENT_ERROR"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownTierError(EntitlementError):
    """Tier name is not in the catalog. Configuration mismatch."""
    error_code = "UNKNOWN_TIER"
    status_code = 500

    def __init__(self, tier_name: object, known: Optional[list] = None):
        self.tier_name = tier_name
        self.known = known or []
        message = f"Unknown tier: {tier_name!r}"
        if self.known:
            message += f" (expected one of: {', '.join(self.known)})"
        super().__init__(message)


class InvalidArgumentError(EntitlementError):
    """Caller passed an out-of-domain value."""
    error_code = "INVALID_ARGUMENT"
    status_code = 400

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class QuotaExceededError(EntitlementError):
    """Increment would push a used-counter past its effective limit."""
    error_code = "QUOTA_EXCEEDED"
    status_code = 402

    def __init__(self, organization_id: str, period: str, kind: str, used: int, limit: int, amount: int = 1):
        self.organization_id = organization_id
        self.period = period
        self.kind = kind
        self.used = used
        self.limit = limit
        self.amount = amount
        if amount == 1:
            detail = f"limit reached for {period}: {used}/{limit} used"
        else:
            detail = f"limit would be exceeded for {period}: {used}+{amount} > {limit}"
        super().__init__(f"{kind.capitalize()} {detail}. Please upgrade your plan.")


class QuotaNotInitializedError(EntitlementError):
    """No usage row exists yet for (organization, period)."""
    error_code = "QUOTA_NOT_INITIALIZED"
    status_code = 409

    def __init__(self, organization_id: str, period: str):
        self.organization_id = organization_id
        self.period = period
        super().__init__(f"No usage quota for organization {organization_id} in period {period}")


class PersistenceError(EntitlementError):
    """Storage layer failure. Caller decides whether to retry."""
    error_code = "PERSISTENCE_ERROR"
    status_code = 503

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Storage operation failed: {operation}"
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)
