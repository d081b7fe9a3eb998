from pydantic import BaseModel, Field
from typing import Optional, Dict
from app.models.survey import ProviderType


class BenchmarkRow(BaseModel):
    """Aggregated percentiles for one standardized specialty and variable"""
    specialty: str
    variable: Optional[str] = None
    survey_count: int
    row_count: int
    n_orgs: int = 0
    n_incumbents: int = 0
    simple: Dict[str, Optional[float]] = Field(default_factory=dict)
    weighted: Dict[str, Optional[float]] = Field(default_factory=dict)


class RegionalRow(BaseModel):
    """Average percentiles of one region; the National row covers every region"""
    region: str
    variable: Optional[str] = None
    row_count: int
    p25: Optional[float] = None
    p50: Optional[float] = None
    p75: Optional[float] = None
    p90: Optional[float] = None


class MarketPercentiles(BaseModel):
    """
    Market distribution for a fair-market-value comparison.

    p0 defaults to 0 and p100 to p90 + (p90 - p75) when not given.
    """
    p0: Optional[float] = None
    p25: float
    p50: float
    p75: float
    p90: float
    p100: Optional[float] = None


class FMVRequest(BaseModel):
    """
    Value to rank against the market.

    Without ``market`` the distribution is built from stored rows matching
    the specialty, variable, region and provider type filters.
    """
    value: float = Field(..., gt=0)
    fte: float = Field(1.0, gt=0, le=2)
    market: Optional[MarketPercentiles] = None
    specialty: Optional[str] = None
    variable: Optional[str] = None
    region: Optional[str] = None
    provider_type: Optional[ProviderType] = None


class FMVResult(BaseModel):
    value: float
    fte: float
    adjusted_value: float
    percentile: Optional[float] = None
    market: MarketPercentiles
    row_count: Optional[int] = None
