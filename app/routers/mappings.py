from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.models.mapping import MappingKind
from app.models.survey import ProviderType
from app.schemas.mapping import (
    MappingCreate,
    MappingUpdate,
    MappingResponse,
    UnmappedEntity,
    AutoMapConfig,
    MappingSuggestion,
    ClearMappingsResponse,
)
from app.services.mapping import mapping_service
from app.services.unmapped import unmapped_detector
from app.core.user_context import get_user_id
from app.core.logging_config import logger

router = APIRouter()


@router.get("/{kind}", response_model=List[MappingResponse])
def list_mappings(
    kind: MappingKind,
    provider_type: Optional[ProviderType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Mappings of one kind, oldest first.

    With provider_type, mappings scoped to it and unscoped mappings are returned.
    """
    return mapping_service.list_mappings(db, user_id=user_id, kind=kind, provider_type=provider_type)


@router.post("/{kind}", response_model=MappingResponse, status_code=status.HTTP_201_CREATED)
def create_mapping(
    kind: MappingKind,
    mapping_data: MappingCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Group raw labels under a canonical name.

    Args:
        kind: Mapping kind (specialty, column, region, provider_type, variable)
        mapping_data: Canonical name and source entries

    Returns:
        Created mapping

    Raises:
        HTTPException 409: If a (raw label, survey source) pair is already mapped
    """
    try:
        logger.info(f"Creating {kind.value} mapping '{mapping_data.canonical_name}' for user={user_id}")
        return mapping_service.create_mapping(db, user_id=user_id, kind=kind, mapping_data=mapping_data)
    except Exception as e:
        logger.error(f"Error creating {kind.value} mapping: {type(e).__name__}: {str(e)}")
        raise


@router.delete("/{kind}", response_model=ClearMappingsResponse)
def clear_mappings(
    kind: MappingKind,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """Delete every mapping of a kind. Repeating the call is harmless."""
    deleted = mapping_service.clear_mappings(db, user_id=user_id, kind=kind)
    return ClearMappingsResponse(kind=kind, deleted=deleted)


@router.get("/{kind}/unmapped", response_model=List[UnmappedEntity])
def get_unmapped(
    kind: MappingKind,
    provider_type: Optional[ProviderType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Raw labels not covered by a mapping or learned mapping.

    The same label from two survey sources is returned twice, once per source.
    """
    return unmapped_detector.get_unmapped(db, user_id=user_id, kind=kind, provider_type=provider_type)


@router.post("/{kind}/auto-map", response_model=List[MappingSuggestion])
def auto_map(
    kind: MappingKind,
    config: AutoMapConfig,
    provider_type: Optional[ProviderType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Suggest mappings for unmapped labels without saving anything.

    Apply a suggestion by creating a mapping (or adding its sources to the
    existing mapping it names).
    """
    return mapping_service.auto_map(db, user_id=user_id, kind=kind, config=config, provider_type=provider_type)


@router.get("/{kind}/{mapping_id}", response_model=MappingResponse)
def get_mapping(
    kind: MappingKind,
    mapping_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    return mapping_service.get_mapping(db, mapping_id=mapping_id, user_id=user_id, kind=kind)


@router.put("/{kind}/{mapping_id}", response_model=MappingResponse)
def update_mapping(
    kind: MappingKind,
    mapping_id: int,
    mapping_data: MappingUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Rename a mapping and add or remove source entries.

    Raises:
        HTTPException 404: If mapping not found
        HTTPException 409: If an added entry is already mapped elsewhere
    """
    return mapping_service.update_mapping(
        db, mapping_id=mapping_id, user_id=user_id, kind=kind, mapping_data=mapping_data
    )


@router.delete("/{kind}/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_mapping(
    kind: MappingKind,
    mapping_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Delete a mapping; its source labels show up as unmapped again.

    Raises:
        HTTPException 404: If mapping not found
    """
    mapping_service.delete_mapping(db, mapping_id=mapping_id, user_id=user_id, kind=kind)
