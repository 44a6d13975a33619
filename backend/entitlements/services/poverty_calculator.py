"""Federal Poverty Line fee tier calculation.

Pure and deterministic. Inputs are validated before any arithmetic.

Thresholds (income as % of poverty line, boundaries inclusive):
- <= 100%  -> free
- <= 150%  -> reduced_25
- <= 200%  -> reduced_50
- above    -> standard

The tier is decided on the exact (rational) ratio; the reported percentage is
rounded half-up for display. Household of 1 earning 15651 therefore reports 100% but
is reduced_25.

Limitation: GUIDELINES_2025 covers the contiguous US only (no Alaska/Hawaii
table) and must be replaced every January when HHS publishes new numbers.
"""
import math
from fractions import Fraction
from numbers import Rational, Real

from entitlements.exceptions import InvalidArgumentError
from entitlements.models.fees import FeeTier, FeeTierResult, PovertyGuidelines, GUIDELINES_2025

FEE_TIER_THRESHOLDS = (
    (100, FeeTier.FREE),
    (150, FeeTier.REDUCED_25),
    (200, FeeTier.REDUCED_50),
)


def _validate(annual_income, household_size) -> None:
    if isinstance(household_size, bool) or not isinstance(household_size, int):
        raise InvalidArgumentError("household_size", "must be an integer")
    if household_size < 1:
        raise InvalidArgumentError("household_size", "must be at least 1")
    if isinstance(annual_income, bool) or not isinstance(annual_income, Real):
        raise InvalidArgumentError("annual_income", "must be a number")
    # ints and Fractions are always finite
    if not isinstance(annual_income, Rational) and not math.isfinite(annual_income):
        raise InvalidArgumentError("annual_income", "must be finite")
    if annual_income < 0:
        raise InvalidArgumentError("annual_income", "must not be negative")


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


def classify(ratio_percent: Real) -> FeeTier:
    for ceiling, tier in FEE_TIER_THRESHOLDS:
        if ratio_percent <= ceiling:
            return tier
    return FeeTier.STANDARD


def calculate(
    annual_income: float,
    household_size: int,
    guidelines: PovertyGuidelines = GUIDELINES_2025,
) -> FeeTierResult:
    """Compute income-to-poverty-line percentage and the fee tier."""
    _validate(annual_income, household_size)

    poverty_line = guidelines.poverty_line(household_size)
    # Exact rational arithmetic: no float rounding at the tier boundaries
    income = annual_income if isinstance(annual_income, Rational) else float(annual_income)
    ratio_percent = Fraction(income) * 100 / poverty_line

    return FeeTierResult(
        percentage=_round_half_up(ratio_percent),
        tier=classify(ratio_percent),
    )
