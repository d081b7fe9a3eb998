from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.core.user_context import get_user_id
from app.models.survey import ProviderType
from app.schemas.analytics import BenchmarkRow, RegionalRow, FMVRequest, FMVResult
from app.services.analytics import analytics_service

router = APIRouter()


@router.get("/benchmarks", response_model=List[BenchmarkRow])
def get_benchmarks(
    provider_type: Optional[ProviderType] = None,
    variable: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Percentile benchmarks per standardized specialty and variable.

    Args:
        provider_type: Restrict to one provider-type bucket
        variable: Restrict to one variable, e.g. "TCC"

    Returns:
        Simple and incumbent-weighted averages of p25-p90
    """
    return analytics_service.get_specialty_benchmarks(
        db, user_id=user_id, provider_type=provider_type, variable=variable
    )


@router.get("/regions", response_model=List[RegionalRow])
def get_regional_comparison(
    specialty: Optional[str] = None,
    variable: Optional[str] = None,
    provider_type: Optional[ProviderType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """Average percentiles per standardized region next to the National figures."""
    return analytics_service.get_regional_comparison(
        db, user_id=user_id, specialty=specialty, variable=variable, provider_type=provider_type
    )


@router.post("/fmv", response_model=FMVResult)
def calculate_fmv(
    request: FMVRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Fair-market-value percentile of a compensation figure.

    The value is scaled to 1.0 FTE before ranking.

    Raises:
        HTTPException 400: If neither market percentiles nor a variable is given
        HTTPException 404: If no stored data matches the filters
    """
    return analytics_service.calculate_fmv(db, user_id=user_id, request=request)
