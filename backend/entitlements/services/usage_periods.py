"""Calendar-month period keys (YYYY-MM, UTC)."""
import re
from datetime import datetime, timezone
from typing import Optional

from entitlements.exceptions import InvalidArgumentError

PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def current_period(now: Optional[datetime] = None) -> str:
    """Billing period identifier for `now` (defaults to current UTC time)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


def validate_period(period: str) -> str:
    if not isinstance(period, str) or not PERIOD_PATTERN.match(period):
        raise InvalidArgumentError("period", f"expected a YYYY-MM calendar month, got {period!r}")
    return period


def period_reset_date(period: str) -> datetime:
    """First instant (UTC) of the month after `period`."""
    match = PERIOD_PATTERN.match(validate_period(period))
    year, month = int(match.group(1)), int(match.group(2))
    if month == 12:
        year, month = year + 1, 1
    else:
        month += 1
    return datetime(year, month, 1, tzinfo=timezone.utc)
