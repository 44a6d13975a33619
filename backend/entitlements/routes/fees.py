"""Fee Tier Routes

Endpoints:
- POST /api/fees/calculate - Sliding-scale fee tier from household income
"""

from fastapi import APIRouter
from pydantic import BaseModel

from entitlements.models.fees import FeeTierResult
from entitlements.services import poverty_calculator

router = APIRouter(prefix="/api/fees", tags=["Fees"])


class FeeCalculationRequest(BaseModel):
    # Range checks happen in the calculator so they answer 400, not 422
    annual_income: float
    household_size: int


class FeeCalculationResponse(FeeTierResult):
    guideline_year: int
    region: str
    poverty_line: int


@router.post("/calculate", response_model=FeeCalculationResponse)
async def calculate_fee_tier(request: FeeCalculationRequest):
    """Income as a percentage of the poverty line, and the resulting tier."""
    guidelines = poverty_calculator.GUIDELINES_2025
    result = poverty_calculator.calculate(request.annual_income, request.household_size, guidelines)
    return FeeCalculationResponse(
        percentage=result.percentage,
        tier=result.tier,
        guideline_year=guidelines.year,
        region=guidelines.region,
        poverty_line=guidelines.poverty_line(request.household_size),
    )
