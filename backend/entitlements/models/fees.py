"""Fee Tier Models

Fee tiers are derived at request time from household income and size.
They are never persisted.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class FeeTier(str, Enum):
    FREE = "free"
    REDUCED_25 = "reduced_25"
    REDUCED_50 = "reduced_50"
    STANDARD = "standard"


@dataclass(frozen=True)
class PovertyGuidelines:
    """Annual federal poverty guideline table for one year and region.

    poverty_line = base + (household_size - 1) * per_person
    """
    year: int
    region: str
    base: int
    per_person: int

    def poverty_line(self, household_size: int) -> int:
        return self.base + (household_size - 1) * self.per_person


# HHS 2025 guidelines, 48 contiguous states and DC. Review every January.
GUIDELINES_2025 = PovertyGuidelines(year=2025, region="contiguous_us", base=15650, per_person=5500)


class FeeTierResult(BaseModel):
    percentage: int  # income as a percentage of the poverty line, rounded
    tier: FeeTier
