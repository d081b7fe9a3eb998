from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Dict, List, Optional

from app.database import get_db
from app.core.user_context import get_user_id
from app.core.logging_config import logger
from app.models.mapping import MappingKind
from app.models.survey import ProviderType
from app.schemas.learned_mapping import LearnedMappingCreate, LearnedMappingResponse
from app.services.learned_mapping import learned_mapping_service


router = APIRouter()


@router.get("/{mapping_type}", response_model=Dict[str, str])
def get_learned_mappings(
    mapping_type: MappingKind,
    provider_type: Optional[ProviderType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Remembered corrections for a mapping type as {original: corrected}.

    With provider_type, entries stored without a provider type are included.
    """
    return learned_mapping_service.get_mappings(
        db, user_id, mapping_type, provider_type.value if provider_type else None
    )


@router.get("/{mapping_type}/entries", response_model=List[LearnedMappingResponse])
def get_learned_mapping_entries(
    mapping_type: MappingKind,
    provider_type: Optional[ProviderType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """Same as the map form, with provider type and survey source of each entry."""
    return learned_mapping_service.get_mappings_with_source(
        db, user_id, mapping_type, provider_type.value if provider_type else None
    )


@router.put("/{mapping_type}", response_model=LearnedMappingResponse)
def save_learned_mapping(
    mapping_type: MappingKind,
    mapping_data: LearnedMappingCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Save or overwrite the correction for (mapping_type, original)

    Args:
        mapping_type: Mapping kind
        mapping_data: Original label, corrected label and optional scope

    Returns:
        Created or updated LearnedMappingResponse
    """
    try:
        return learned_mapping_service.save_mapping(
            db=db,
            user_id=user_id,
            mapping_type=mapping_type,
            original=mapping_data.original,
            corrected=mapping_data.corrected,
            provider_type=mapping_data.provider_type.value if mapping_data.provider_type else None,
            survey_source=mapping_data.survey_source
        )

    except Exception as e:
        logger.error(f"Error saving learned mapping: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save mapping: {str(e)}"
        )


@router.delete("/{mapping_type}/{original}", status_code=status.HTTP_204_NO_CONTENT)
def remove_learned_mapping(
    mapping_type: MappingKind,
    original: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Raises:
        HTTPException 404: If no correction is stored for the label
    """
    if not learned_mapping_service.remove_mapping(db, user_id, mapping_type, original):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No learned {mapping_type.value} mapping for '{original}'"
        )


@router.delete("/{mapping_type}")
def clear_learned_mappings(
    mapping_type: MappingKind,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    deleted = learned_mapping_service.clear_mappings(db, user_id, mapping_type)
    return {"mapping_type": mapping_type, "deleted": deleted}
