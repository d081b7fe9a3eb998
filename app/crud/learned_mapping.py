from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, delete, or_
from typing import Optional, List
from app.models.learned_mapping import LearnedMapping
from app.models.mapping import MappingKind
from app.core.logging_config import logger


class LearnedMappingCRUD:
    """CRUD operations for LearnedMapping"""

    def get(
        self,
        db: Session,
        user_id: int,
        mapping_type: MappingKind,
        original: str
    ) -> Optional[LearnedMapping]:
        """Get one learned entry by its (type, original) key"""
        stmt = select(LearnedMapping).where(
            LearnedMapping.user_id == user_id,
            LearnedMapping.mapping_type == mapping_type,
            LearnedMapping.original == original.strip().lower()
        )
        return db.execute(stmt).scalar_one_or_none()

    def get_by_type(
        self,
        db: Session,
        user_id: int,
        mapping_type: MappingKind,
        provider_type: Optional[str] = None
    ) -> List[LearnedMapping]:
        """Learned entries of one type; a provider type also admits unscoped entries"""
        stmt = select(LearnedMapping).where(
            LearnedMapping.user_id == user_id,
            LearnedMapping.mapping_type == mapping_type
        ).order_by(LearnedMapping.id)
        if provider_type:
            stmt = stmt.where(or_(
                LearnedMapping.provider_type == provider_type,
                LearnedMapping.provider_type.is_(None)
            ))
        return list(db.execute(stmt).scalars().all())

    def get_all(self, db: Session, user_id: int) -> List[LearnedMapping]:
        stmt = select(LearnedMapping).where(
            LearnedMapping.user_id == user_id
        ).order_by(LearnedMapping.mapping_type, LearnedMapping.id)
        return list(db.execute(stmt).scalars().all())

    def create_or_update(
        self,
        db: Session,
        user_id: int,
        mapping_type: MappingKind,
        original: str,
        corrected: str,
        provider_type: Optional[str] = None,
        survey_source: Optional[str] = None
    ) -> LearnedMapping:
        """Create or overwrite the entry for (type, original); last write wins"""
        values = {
            "corrected": corrected,
            "provider_type": provider_type,
            "survey_source": survey_source,
        }
        existing = self.get(db, user_id, mapping_type, original)

        if existing:
            for field, value in values.items():
                setattr(existing, field, value)
            db.commit()
            db.refresh(existing)
            logger.info(f"Updated learned {mapping_type.value} mapping for user={user_id}: '{existing.original}' -> '{corrected}'")
            return existing

        # If not exists, try to create with exception handling for concurrent saves
        try:
            new_mapping = LearnedMapping(
                user_id=user_id,
                mapping_type=mapping_type,
                original=original.strip().lower(),
                **values
            )
            db.add(new_mapping)
            db.commit()
            db.refresh(new_mapping)
            logger.info(f"Created learned {mapping_type.value} mapping for user={user_id}: '{new_mapping.original}' -> '{corrected}'")
            return new_mapping
        except IntegrityError:
            # Another request created the record between check and insert
            db.rollback()
            existing = self.get(db, user_id, mapping_type, original)
            if existing:
                for field, value in values.items():
                    setattr(existing, field, value)
                db.commit()
                db.refresh(existing)
                return existing
            raise

    def delete(
        self,
        db: Session,
        user_id: int,
        mapping_type: MappingKind,
        original: str
    ) -> bool:
        """Delete one entry. Returns False when nothing matched"""
        result = db.execute(delete(LearnedMapping).where(
            LearnedMapping.user_id == user_id,
            LearnedMapping.mapping_type == mapping_type,
            LearnedMapping.original == original.strip().lower()
        ))
        db.commit()
        return bool(result.rowcount)

    def delete_by_type(self, db: Session, user_id: int, mapping_type: Optional[MappingKind] = None) -> int:
        """Delete every entry of a type, or every entry when no type is given"""
        stmt = delete(LearnedMapping).where(LearnedMapping.user_id == user_id)
        if mapping_type is not None:
            stmt = stmt.where(LearnedMapping.mapping_type == mapping_type)
        result = db.execute(stmt)
        db.commit()
        return result.rowcount or 0


learned_mapping_crud = LearnedMappingCRUD()
