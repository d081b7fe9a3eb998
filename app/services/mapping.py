from typing import List, Optional, Dict, Tuple
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from app.crud import mapping as mapping_crud
from app.crud.mapping import label_key
from app.models.mapping import Mapping, MappingKind
from app.models.survey import ProviderType
from app.schemas.mapping import (
    SourceEntry, MappingCreate, MappingUpdate, AutoMapConfig, MappingSuggestion, UnmappedEntity
)
from app.services.unmapped import unmapped_detector
from app.services.similarity import label_similarity, column_similarity, normalize_label
from app.core.logging_config import logger

# Every column that reaches the column mapper holds numeric survey figures
COLUMN_MAPPING_DATA_TYPE = "number"


class MappingService:
    """
    Service layer for standardized mappings.

    A (raw label, survey source) pair may be claimed by at most one mapping
    of a kind. Conflicting claims are rejected with 409 and nothing is
    written.
    """

    def __init__(self):
        self.crud = mapping_crud

    def get_mapping(self, db: Session, mapping_id: int, user_id: int, kind: MappingKind) -> Mapping:
        """
        Get a mapping by ID.

        Raises:
            HTTPException 404: If the mapping does not exist for this user and kind
        """
        mapping = self.crud.get(db=db, id=mapping_id, user_id=user_id)

        if not mapping or mapping.kind != kind:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{kind.value.replace('_', ' ').capitalize()} mapping not found"
            )

        return mapping

    def list_mappings(
        self,
        db: Session,
        user_id: int,
        kind: MappingKind,
        provider_type: Optional[ProviderType] = None
    ) -> List[Mapping]:
        return self.crud.get_by_kind(db, user_id=user_id, kind=kind, provider_type=provider_type)

    def _check_claims(
        self,
        db: Session,
        user_id: int,
        kind: MappingKind,
        entries: List[SourceEntry],
        owner_id: Optional[int] = None
    ) -> None:
        """
        Reject entries repeated in the request or claimed by another mapping.

        Raises:
            HTTPException 409: On any duplicate claim
        """
        claims = self.crud.get_claims(db, user_id=user_id, kind=kind)
        seen = set()
        conflicts = []

        for entry in entries:
            claim = (label_key(entry.raw_label), entry.survey_source)
            if claim in seen:
                conflicts.append(f"'{entry.raw_label}' ({entry.survey_source}) is listed more than once")
                continue
            seen.add(claim)

            owner = claims.get(claim)
            if owner is not None and owner != owner_id:
                conflicts.append(f"'{entry.raw_label}' ({entry.survey_source}) is already mapped by mapping {owner}")

        if conflicts:
            logger.warning(f"Rejected {kind.value} mapping for user={user_id}: {'; '.join(conflicts)}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Duplicate mapping claim: " + "; ".join(conflicts)
            )

    def create_mapping(
        self,
        db: Session,
        user_id: int,
        kind: MappingKind,
        mapping_data: MappingCreate
    ) -> Mapping:
        """
        Group raw labels under a canonical name.

        Args:
            db: Database session
            user_id: Owning user
            kind: Mapping kind
            mapping_data: Canonical name, source entries and optional provider type

        Returns:
            Created Mapping

        Raises:
            HTTPException 409: If any source entry is already claimed
        """
        self._check_claims(db, user_id, kind, mapping_data.source_entries)

        try:
            mapping = self.crud.create_with_sources(
                db,
                user_id=user_id,
                kind=kind,
                canonical_name=mapping_data.canonical_name,
                source_entries=mapping_data.source_entries,
                provider_type=mapping_data.provider_type,
            )
        except IntegrityError:
            # Claimed concurrently between the check and the insert
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Duplicate mapping claim: a source label was mapped by another request"
            )

        logger.info(
            f"Created {kind.value} mapping id={mapping.id} '{mapping.canonical_name}' "
            f"with {len(mapping.sources)} sources for user={user_id}"
        )
        return mapping

    def update_mapping(
        self,
        db: Session,
        mapping_id: int,
        user_id: int,
        kind: MappingKind,
        mapping_data: MappingUpdate
    ) -> Mapping:
        """
        Rename a mapping and add or remove source entries.

        Removals are applied before additions, so an entry can be moved
        within the same request.

        Raises:
            HTTPException 404: If the mapping is not found
            HTTPException 409: If an added entry is claimed by another mapping
            HTTPException 400: If the update would leave the mapping without sources
        """
        mapping = self.get_mapping(db, mapping_id, user_id, kind)

        removals = {(label_key(e.raw_label), e.survey_source) for e in mapping_data.remove_sources}
        kept = [s for s in mapping.sources if (s.label_key, s.survey_source) not in removals]
        present = {(s.label_key, s.survey_source) for s in kept}
        additions = [
            e for e in mapping_data.add_sources
            if (label_key(e.raw_label), e.survey_source) not in present
        ]

        if additions:
            self._check_claims(db, user_id, kind, additions, owner_id=mapping.id)

        if not kept and not additions:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A mapping must keep at least one source entry"
            )

        if mapping_data.canonical_name is not None and mapping_data.canonical_name.strip():
            mapping.canonical_name = mapping_data.canonical_name.strip()

        try:
            mapping.sources = kept
            # Deletes must reach the database before re-inserting a moved claim
            db.flush()
            next_position = max((s.position for s in kept), default=-1) + 1
            for offset, entry in enumerate(additions):
                mapping.sources.append(self.crud.build_source(mapping, entry, next_position + offset))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Duplicate mapping claim: a source label was mapped by another request"
            )

        db.refresh(mapping)
        logger.info(
            f"Updated {kind.value} mapping id={mapping.id}: "
            f"+{len(additions)} / -{len(removals)} sources for user={user_id}"
        )
        return mapping

    def delete_mapping(self, db: Session, mapping_id: int, user_id: int, kind: MappingKind) -> Mapping:
        """
        Delete a mapping; its source labels become unmapped again.

        Raises:
            HTTPException 404: If the mapping is not found
        """
        mapping = self.get_mapping(db, mapping_id, user_id, kind)
        self.crud.delete(db, id=mapping.id, user_id=user_id)
        logger.info(f"Deleted {kind.value} mapping id={mapping_id} for user={user_id}")
        return mapping

    def clear_mappings(self, db: Session, user_id: int, kind: MappingKind) -> int:
        """Delete every mapping of a kind. Safe to call repeatedly."""
        deleted = self.crud.delete_by_kind(db, user_id=user_id, kind=kind)
        logger.info(f"Cleared {deleted} {kind.value} mappings for user={user_id}")
        return deleted

    def _score(self, kind: MappingKind, entity: UnmappedEntity, canonical_name: str, config: AutoMapConfig) -> float:
        if kind == MappingKind.column:
            return column_similarity(
                entity.name,
                canonical_name,
                entity.data_type,
                COLUMN_MAPPING_DATA_TYPE,
                include_data_type_matching=config.include_data_type_matching,
            )
        return label_similarity(entity.name, canonical_name)

    def auto_map(
        self,
        db: Session,
        user_id: int,
        kind: MappingKind,
        config: AutoMapConfig,
        provider_type: Optional[ProviderType] = None
    ) -> List[MappingSuggestion]:
        """
        Suggest groupings for unmapped labels. Nothing is persisted.

        Each unmapped entity is scored against the canonical names of existing
        mappings; the best score at or above the threshold wins, ties going to
        the mapping seen first. Entities left over are grouped by normalized
        label when the label occurs in two or more survey sources.

        Returns:
            Suggestions for existing mappings first, then new groupings
        """
        entities = unmapped_detector.get_unmapped(db, user_id=user_id, kind=kind, provider_type=provider_type)
        existing = (
            self.crud.get_by_kind(db, user_id=user_id, kind=kind, provider_type=provider_type)
            if config.use_existing_mappings else []
        )

        matched: Dict[int, Tuple[Mapping, List[Tuple[UnmappedEntity, float]]]] = {}
        leftovers: List[UnmappedEntity] = []

        for entity in entities:
            best_mapping = None
            best_score = 0.0
            for mapping in existing:
                score = self._score(kind, entity, mapping.canonical_name, config)
                if score > best_score:
                    best_mapping, best_score = mapping, score

            if best_mapping is not None and best_score >= config.confidence_threshold:
                matched.setdefault(best_mapping.id, (best_mapping, []))[1].append((entity, best_score))
            else:
                leftovers.append(entity)

        suggestions = []
        for mapping, hits in matched.values():
            suggestions.append(MappingSuggestion(
                canonical_name=mapping.canonical_name,
                confidence=round(min(score for _, score in hits), 4),
                existing_mapping_id=mapping.id,
                source_entries=[
                    SourceEntry(raw_label=e.name, survey_source=e.survey_source, frequency=e.frequency)
                    for e, _ in hits
                ],
            ))

        groups: Dict[str, List[UnmappedEntity]] = {}
        for entity in leftovers:
            groups.setdefault(normalize_label(entity.name), []).append(entity)

        for normalized, group in groups.items():
            if len({e.survey_source for e in group}) < 2:
                continue
            canonical = group[0].name if kind == MappingKind.column else normalized.title()
            suggestions.append(MappingSuggestion(
                canonical_name=canonical,
                confidence=1.0,
                source_entries=[
                    SourceEntry(raw_label=e.name, survey_source=e.survey_source, frequency=e.frequency)
                    for e in group
                ],
            ))

        logger.info(
            f"Auto-map {kind.value} for user={user_id}: {len(entities)} unmapped, "
            f"{len(suggestions)} suggestions (threshold={config.confidence_threshold})"
        )
        return suggestions


mapping_service = MappingService()
