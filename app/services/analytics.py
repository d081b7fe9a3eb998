import math
import pandas as pd
from typing import List, Optional, Dict, Iterable
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import select
from app.crud import survey as survey_crud, mapping as mapping_crud
from app.crud.mapping import label_key
from app.models.mapping import MappingKind
from app.models.survey import SurveyRow, ProviderType
from app.schemas.analytics import BenchmarkRow, RegionalRow, MarketPercentiles, FMVRequest, FMVResult
from app.services.learned_mapping import learned_mapping_service
from app.services.provider_type import matches_provider_type
from app.core.logging_config import logger

PERCENTILES = ["p25", "p50", "p75", "p90"]
NATIONAL = "National"

FRAME_COLUMNS = ["survey_id", "specialty", "region", "variable", "n_orgs", "n_incumbents", *PERCENTILES]


def _clean(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return round(float(value), 2)


def _matches(series: pd.Series, text: str) -> pd.Series:
    return series.fillna("").astype(str).str.strip().str.lower() == text.strip().lower()


def calculate_percentile(values: List[float], percentile: float) -> Optional[float]:
    """Nearest-rank percentile: the value at floor(percentile / 100 * n) of the sorted values."""
    if not values:
        return None
    ordered = sorted(values)
    index = min(int(percentile / 100 * len(ordered)), len(ordered) - 1)
    return ordered[index]


def calculate_market_data(values: Iterable[Optional[float]]) -> Optional[MarketPercentiles]:
    """
    Market distribution from a set of survey medians.

    Returns:
        MarketPercentiles, or None when no value is usable
    """
    usable = [float(v) for v in values if v is not None and not pd.isna(v)]
    if not usable:
        return None
    return MarketPercentiles(**{p: calculate_percentile(usable, int(p[1:])) for p in PERCENTILES})


def apply_fte_adjustment(value: float, fte: float) -> float:
    """Scale a part-time figure to 1.0 FTE."""
    return value / fte if fte else value


def get_percentile_rank(market: MarketPercentiles, value: float) -> Optional[float]:
    """
    Percentile of ``value`` by linear interpolation between market points.

    Below p25 interpolates from p0 (default 0); at or above p90 interpolates
    towards p100 (default p90 + (p90 - p75)). Two equal neighbouring points
    give the lower percentile. The result is clamped to 0-100.

    Returns:
        Rank rounded to two decimals, or None for a missing value or a
        market whose points are out of order
    """
    if value is None or math.isnan(value):
        return None

    p0 = market.p0 if market.p0 is not None else 0.0
    p100 = market.p100 if market.p100 is not None else market.p90 + (market.p90 - market.p75)
    points = [(0, p0), (25, market.p25), (50, market.p50), (75, market.p75), (90, market.p90), (100, p100)]

    if value < market.p25:
        segment = (points[0], points[1])
    elif value >= market.p90:
        segment = (points[4], points[5])
    else:
        segment = next(
            ((points[i], points[i + 1]) for i in range(1, 4) if points[i][1] <= value < points[i + 1][1]),
            None
        )
        if segment is None:
            return None

    (low_p, low_v), (high_p, high_v) = segment
    if high_v == low_v:
        return float(low_p)

    rank = low_p + (value - low_v) / (high_v - low_v) * (high_p - low_p)
    return round(min(max(rank, 0.0), 100.0), 2)


class AnalyticsService:
    """Benchmarks, regional comparisons and fair-market-value ranks over the user's surveys"""

    def resolve_labels(self, db: Session, user_id: int, kind: MappingKind) -> Dict[tuple, str]:
        """{(label_key, survey_source): canonical name} from the user's mappings of one kind"""
        resolved = {}
        for mapping in mapping_crud.get_by_kind(db, user_id=user_id, kind=kind):
            for source in mapping.sources:
                resolved[(source.label_key, source.survey_source)] = mapping.canonical_name
        return resolved

    def load_frame(self, db: Session, user_id: int, provider_type: Optional[ProviderType] = None) -> pd.DataFrame:
        """
        Every row of the in-scope surveys with standardized labels.

        Raw specialty and region labels resolve through a mapping for the
        row's survey source, then a learned correction, then stay as-is.
        """
        surveys = {
            s.id: s for s in survey_crud.get_multi(db, user_id=user_id, limit=None)
            if matches_provider_type(s, provider_type)
        }
        if not surveys:
            return pd.DataFrame(columns=FRAME_COLUMNS)

        stmt = select(SurveyRow).where(SurveyRow.survey_id.in_(list(surveys.keys())))
        rows = db.execute(stmt).scalars().all()

        scope = provider_type.value if provider_type else None
        mapped = {kind: self.resolve_labels(db, user_id, kind) for kind in (MappingKind.specialty, MappingKind.region)}
        learned = {
            kind: learned_mapping_service.get_mappings(db, user_id, kind, scope)
            for kind in (MappingKind.specialty, MappingKind.region)
        }

        def standardize(raw: Optional[str], source: str, kind: MappingKind) -> Optional[str]:
            if not raw or not raw.strip():
                return None
            key = label_key(raw)
            return mapped[kind].get((key, source)) or learned[kind].get(key) or raw.strip()

        records = []
        for row in rows:
            source = surveys[row.survey_id].survey_source
            records.append({
                "survey_id": row.survey_id,
                "specialty": standardize(row.specialty, source, MappingKind.specialty),
                "region": standardize(row.region, source, MappingKind.region),
                "variable": (row.variable or "").strip(),
                "n_orgs": row.n_orgs,
                "n_incumbents": row.n_incumbents,
                **{p: getattr(row, p) for p in PERCENTILES},
            })
        return pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)

    def get_specialty_benchmarks(
        self,
        db: Session,
        user_id: int,
        provider_type: Optional[ProviderType] = None,
        variable: Optional[str] = None
    ) -> List[BenchmarkRow]:
        """
        Aggregate percentiles per (standardized specialty, variable).

        Weighted figures weight every row by its incumbent count.

        Args:
            db: Database session
            user_id: Owning user
            provider_type: Optional provider-type bucket
            variable: Optional variable filter (case-insensitive)

        Returns:
            One BenchmarkRow per specialty and variable, sorted by specialty
        """
        df = self.load_frame(db, user_id, provider_type)
        df = df[df["specialty"].notna()]
        if variable:
            df = df[_matches(df["variable"], variable)]
        if df.empty:
            return []

        benchmarks = []
        for (specialty, var), group in df.groupby(["specialty", "variable"], sort=True):
            weights = group["n_incumbents"].fillna(0).astype(float)
            weighted = {}
            for p in PERCENTILES:
                values = group[p].astype(float)
                mask = values.notna() & (weights > 0)
                total_weight = weights[mask].sum()
                weighted[p] = _clean((values[mask] * weights[mask]).sum() / total_weight) if total_weight else None

            benchmarks.append(BenchmarkRow(
                specialty=specialty,
                variable=var or None,
                survey_count=int(group["survey_id"].nunique()),
                row_count=len(group),
                n_orgs=int(group["n_orgs"].fillna(0).sum()),
                n_incumbents=int(weights.sum()),
                simple={p: _clean(group[p].astype(float).mean()) for p in PERCENTILES},
                weighted=weighted,
            ))

        logger.info(f"Computed {len(benchmarks)} specialty benchmarks for user={user_id}")
        return benchmarks

    def get_regional_comparison(
        self,
        db: Session,
        user_id: int,
        specialty: Optional[str] = None,
        variable: Optional[str] = None,
        provider_type: Optional[ProviderType] = None
    ) -> List[RegionalRow]:
        """
        Average p25-p90 per standardized region, with a National row.

        Regions resolve through region mappings per survey source. Rows
        without a region only count towards National. Missing percentiles
        are left out of the averages.

        Returns:
            Per variable: the National row first, then regions by name
        """
        df = self.load_frame(db, user_id, provider_type)
        if specialty:
            df = df[_matches(df["specialty"], specialty)]
        if variable:
            df = df[_matches(df["variable"], variable)]
        if df.empty:
            return []

        comparison = []
        for var, group in df.groupby("variable", sort=True):
            comparison.append(self._regional_row(NATIONAL, var, group))
            for region, region_group in group[group["region"].notna()].groupby("region", sort=True):
                comparison.append(self._regional_row(region, var, region_group))

        logger.info(f"Computed {len(comparison)} regional rows for user={user_id} (specialty={specialty or 'ALL'})")
        return comparison

    @staticmethod
    def _regional_row(region: str, variable: str, group: pd.DataFrame) -> RegionalRow:
        return RegionalRow(
            region=region,
            variable=variable or None,
            row_count=len(group),
            **{p: _clean(group[p].astype(float).mean()) for p in PERCENTILES},
        )

    def calculate_fmv_percentile(self, value: float, fte: float, market: MarketPercentiles) -> Optional[float]:
        """Percentile rank of a value after scaling it to 1.0 FTE."""
        return get_percentile_rank(market, apply_fte_adjustment(value, fte))

    def calculate_fmv(self, db: Session, user_id: int, request: FMVRequest) -> FMVResult:
        """
        Rank a compensation figure against a market distribution.

        Without an explicit market, the distribution is built from the p50
        of every stored row matching the filters.

        Raises:
            HTTPException 400: If neither a market nor a variable is given
            HTTPException 404: If no stored row matches the filters
        """
        market = request.market
        row_count = None

        if market is None:
            if not request.variable:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Give either market percentiles or a variable to build them from"
                )

            df = self.load_frame(db, user_id, request.provider_type)
            df = df[_matches(df["variable"], request.variable)]
            if request.specialty:
                df = df[_matches(df["specialty"], request.specialty)]
            if request.region:
                df = df[_matches(df["region"], request.region)]

            market = calculate_market_data(df["p50"].tolist())
            if market is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="No market data matches the selected filters"
                )
            row_count = len(df)

        adjusted = apply_fte_adjustment(request.value, request.fte)
        percentile = self.calculate_fmv_percentile(request.value, request.fte, market)
        logger.info(f"FMV for user={user_id}: value={adjusted} ranks at percentile {percentile}")

        return FMVResult(
            value=request.value,
            fte=request.fte,
            adjusted_value=round(adjusted, 2),
            percentile=percentile,
            market=market,
            row_count=row_count,
        )


analytics_service = AnalyticsService()
