from pydantic import BaseModel, Field
from typing import Optional
from app.models.mapping import MappingKind
from app.models.survey import ProviderType


class LearnedMappingCreate(BaseModel):
    """Request to remember a label correction"""
    original: str = Field(..., min_length=1)
    corrected: str = Field(..., min_length=1)
    provider_type: Optional[ProviderType] = None
    survey_source: Optional[str] = None


class LearnedMappingResponse(BaseModel):
    id: int
    mapping_type: MappingKind
    original: str
    corrected: str
    provider_type: Optional[str] = None
    survey_source: Optional[str] = None

    class Config:
        from_attributes = True
