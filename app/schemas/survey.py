from pydantic import BaseModel
from typing import List, Dict, Any, Optional
from datetime import datetime
from app.models.survey import ProviderType, DataCategory


class ColumnMetadata(BaseModel):
    """Detected source column for a standard row field"""
    description: str  # User-friendly description
    identifier: str  # Internal field name (e.g. "specialty", "p50")
    index: int
    mapping: Optional[str] = None  # Matched CSV header, if any
    sample_value: str


class SurveyResponse(BaseModel):
    id: int
    user_id: int
    name: str
    year: str
    survey_type: str
    survey_source: str
    provider_type: Optional[ProviderType] = None
    data_category: Optional[DataCategory] = None
    row_count: int
    uploaded_at: datetime
    file_metadata: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class SurveyUploadResponse(BaseModel):
    """Response from a survey file upload"""
    survey: SurveyResponse
    columns: List[ColumnMetadata]
    skipped_rows: int


class SurveyRowResponse(BaseModel):
    id: int
    survey_id: int
    row_index: int
    specialty: Optional[str] = None
    region: Optional[str] = None
    provider_type: Optional[str] = None
    variable: Optional[str] = None
    p25: Optional[float] = None
    p50: Optional[float] = None
    p75: Optional[float] = None
    p90: Optional[float] = None
    n_orgs: Optional[int] = None
    n_incumbents: Optional[int] = None
    data: Dict[str, Any]

    class Config:
        from_attributes = True
