from sqlalchemy.orm import Session
from typing import Optional, Dict, List
from app.crud.learned_mapping import learned_mapping_crud
from app.models.learned_mapping import LearnedMapping
from app.models.mapping import MappingKind
from app.core.logging_config import logger


class LearnedMappingService:
    """Service for the per-user cache of remembered label corrections"""

    def get_mappings(
        self,
        db: Session,
        user_id: int,
        mapping_type: MappingKind,
        provider_type: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Get remembered corrections for a mapping type

        Args:
            db: Database session
            user_id: Owning user
            mapping_type: Mapping kind (e.g. specialty, column)
            provider_type: Optional scope; unscoped entries are always included

        Returns:
            {original: corrected} with lower-cased originals
        """
        entries = learned_mapping_crud.get_by_type(db, user_id, mapping_type, provider_type)
        return {entry.original: entry.corrected for entry in entries}

    def get_mappings_with_source(
        self,
        db: Session,
        user_id: int,
        mapping_type: MappingKind,
        provider_type: Optional[str] = None
    ) -> List[LearnedMapping]:
        return learned_mapping_crud.get_by_type(db, user_id, mapping_type, provider_type)

    def get_column_mapping(self, db: Session, user_id: int) -> Dict[str, str]:
        """
        Remembered column corrections that name a standard row field,
        inverted for upload auto-detection: {row_field: original_header}.
        """
        saved = {}
        for original, corrected in self.get_mappings(db, user_id, MappingKind.column).items():
            saved.setdefault(corrected.strip().lower(), original)
        if saved:
            logger.info(f"Loaded {len(saved)} learned column mappings for user={user_id}")
        return saved

    def save_mapping(
        self,
        db: Session,
        user_id: int,
        mapping_type: MappingKind,
        original: str,
        corrected: str,
        provider_type: Optional[str] = None,
        survey_source: Optional[str] = None
    ) -> LearnedMapping:
        """
        Save or overwrite a correction keyed by (mapping_type, original)

        Returns:
            Created or updated LearnedMapping
        """
        return learned_mapping_crud.create_or_update(
            db=db,
            user_id=user_id,
            mapping_type=mapping_type,
            original=original,
            corrected=corrected,
            provider_type=provider_type,
            survey_source=survey_source
        )

    def remove_mapping(self, db: Session, user_id: int, mapping_type: MappingKind, original: str) -> bool:
        removed = learned_mapping_crud.delete(db, user_id, mapping_type, original)
        if removed:
            logger.info(f"Removed learned {mapping_type.value} mapping '{original}' for user={user_id}")
        return removed

    def clear_mappings(self, db: Session, user_id: int, mapping_type: Optional[MappingKind] = None) -> int:
        deleted = learned_mapping_crud.delete_by_type(db, user_id, mapping_type)
        scope = mapping_type.value if mapping_type else "all"
        logger.info(f"Cleared {deleted} learned mappings ({scope}) for user={user_id}")
        return deleted


learned_mapping_service = LearnedMappingService()
