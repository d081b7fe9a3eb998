from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from app.models.mapping import MappingKind
from app.models.survey import ProviderType


class SourceEntry(BaseModel):
    """A raw label as observed in one survey source"""
    raw_label: str = Field(..., min_length=1)
    survey_source: str = Field(..., min_length=1)
    frequency: int = 0


class SourceEntryResponse(SourceEntry):
    class Config:
        from_attributes = True


class MappingCreate(BaseModel):
    canonical_name: str = Field(..., min_length=1)
    source_entries: List[SourceEntry] = Field(..., min_length=1)
    provider_type: Optional[ProviderType] = None


class MappingUpdate(BaseModel):
    canonical_name: Optional[str] = None
    add_sources: List[SourceEntry] = []
    remove_sources: List[SourceEntry] = []


class MappingResponse(BaseModel):
    id: int
    kind: MappingKind
    canonical_name: str
    provider_type: Optional[ProviderType] = None
    sources: List[SourceEntryResponse]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UnmappedEntity(BaseModel):
    """A raw label not yet covered by a mapping or learned mapping (never stored)"""
    name: str
    frequency: int
    survey_source: str
    provider_type: Optional[str] = None
    data_type: Optional[str] = None  # column mapping only
    category: Optional[str] = None  # column mapping only


class AutoMapConfig(BaseModel):
    confidence_threshold: float = Field(0.8, ge=0, le=1)
    include_data_type_matching: bool = True
    use_existing_mappings: bool = True


class MappingSuggestion(BaseModel):
    canonical_name: str
    confidence: float
    existing_mapping_id: Optional[int] = None  # None when a new mapping is proposed
    source_entries: List[SourceEntry]


class ClearMappingsResponse(BaseModel):
    kind: MappingKind
    deleted: int
