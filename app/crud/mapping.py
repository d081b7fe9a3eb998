from typing import Optional, List, Dict, Tuple
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, delete, or_
from app.crud.base import CRUDBase
from app.models.mapping import Mapping, MappingKind, MappingSource
from app.models.survey import ProviderType
from app.schemas.mapping import SourceEntry


def label_key(raw_label: str) -> str:
    """Matching key for a raw label: trimmed and lower-cased."""
    return raw_label.strip().lower()


class CRUDMapping(CRUDBase[Mapping]):
    """
    CRUD operations for Mapping and its source entries.

    Claim checks live in the service layer; the unique constraint on
    mapping_source is the last line of defence.
    """

    def get(self, db: Session, id: int, user_id: int) -> Optional[Mapping]:
        stmt = select(Mapping).where(
            Mapping.id == id,
            Mapping.user_id == user_id
        ).options(selectinload(Mapping.sources))
        return db.execute(stmt).scalar_one_or_none()

    def get_by_kind(
        self,
        db: Session,
        *,
        user_id: int,
        kind: MappingKind,
        provider_type: Optional[ProviderType] = None
    ) -> List[Mapping]:
        """
        Mappings of one kind, oldest first.

        With a provider type, mappings scoped to it and unscoped mappings are
        returned.
        """
        stmt = select(Mapping).where(
            Mapping.user_id == user_id,
            Mapping.kind == kind
        ).options(selectinload(Mapping.sources)).order_by(Mapping.id)
        if provider_type is not None:
            stmt = stmt.where(or_(Mapping.provider_type == provider_type, Mapping.provider_type.is_(None)))
        return list(db.execute(stmt).scalars().all())

    def get_claims(
        self,
        db: Session,
        *,
        user_id: int,
        kind: MappingKind
    ) -> Dict[Tuple[str, str], int]:
        """Every claimed (label_key, survey_source) pair of a kind, with the owning mapping id."""
        stmt = select(MappingSource.label_key, MappingSource.survey_source, MappingSource.mapping_id).where(
            MappingSource.user_id == user_id,
            MappingSource.kind == kind
        )
        return {(key, source): mapping_id for key, source, mapping_id in db.execute(stmt).all()}

    def build_source(self, mapping: Mapping, entry: SourceEntry, position: int) -> MappingSource:
        return MappingSource(
            user_id=mapping.user_id,
            kind=mapping.kind,
            raw_label=entry.raw_label.strip(),
            label_key=label_key(entry.raw_label),
            survey_source=entry.survey_source,
            frequency=entry.frequency,
            position=position,
        )

    def create_with_sources(
        self,
        db: Session,
        *,
        user_id: int,
        kind: MappingKind,
        canonical_name: str,
        source_entries: List[SourceEntry],
        provider_type: Optional[ProviderType] = None
    ) -> Mapping:
        db_obj = Mapping(
            user_id=user_id,
            kind=kind,
            canonical_name=canonical_name.strip(),
            provider_type=provider_type,
        )
        db_obj.sources = [
            self.build_source(db_obj, entry, position)
            for position, entry in enumerate(source_entries)
        ]
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def delete_by_kind(self, db: Session, *, user_id: int, kind: MappingKind) -> int:
        """Delete every mapping of a kind with its sources. Returns the number of mappings removed."""
        db.execute(delete(MappingSource).where(
            MappingSource.user_id == user_id,
            MappingSource.kind == kind
        ))
        result = db.execute(delete(Mapping).where(
            Mapping.user_id == user_id,
            Mapping.kind == kind
        ))
        db.commit()
        return result.rowcount or 0

    def delete_all(self, db: Session, *, user_id: int) -> int:
        db.execute(delete(MappingSource).where(MappingSource.user_id == user_id))
        result = db.execute(delete(Mapping).where(Mapping.user_id == user_id))
        db.commit()
        return result.rowcount or 0


# Create a singleton instance
mapping = CRUDMapping(Mapping)
