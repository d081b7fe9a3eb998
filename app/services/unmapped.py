"""
Unmapped-entity detection.

Labels are resolved per survey source: "Cardiology" from MGMA and
"Cardiology" from SullivanCotter are separate entities, and mapping one
leaves the other unmapped. Results are recomputed on every call.
"""

import re
from typing import Optional, List, Dict, Set, Tuple, Any
from sqlalchemy.orm import Session
from sqlalchemy import select
from app.crud import survey as survey_crud, mapping as mapping_crud
from app.models.mapping import MappingKind
from app.models.survey import Survey, SurveyRow, ProviderType
from app.schemas.mapping import UnmappedEntity
from app.services.learned_mapping import learned_mapping_service
from app.services.provider_type import matches_provider_type, effective_provider_type
from app.core.logging_config import logger

# Historical field names for each label, checked in order against the raw record
LABEL_ALIASES = {
    MappingKind.specialty: ["specialty", "Specialty", "Provider Type"],
    MappingKind.region: ["region", "Region", "geographic_region", "Geographic Region"],
    MappingKind.provider_type: ["provider_type", "providerType", "Provider Type"],
    MappingKind.variable: ["variable", "Variable", "Variable Name"],
}

# Columns handled by the dedicated label mappers
COLUMN_EXCLUDE_PATTERNS = [
    re.compile(p, re.I) for p in (
        r"^specialty$",
        r"^provider.*type$", r"^providertype$",
        r"^geographic.*region$", r"^region$", r"^geographicregion$",
        r"^variable$", r"^variable.*name$",
    )
]

COLUMN_INCLUDE_PATTERNS = [
    re.compile(p, re.I) for p in (
        # total cash compensation
        r"tcc.*p\d+", r"p\d+.*tcc", r"total.*cash.*\d+", r"\d+.*total.*cash",
        r"total.*comp.*\d+", r"\d+.*total.*comp",
        # work RVUs
        r"wrvu.*p\d+", r"p\d+.*wrvu", r"work.*rvu.*\d+", r"\d+.*work.*rvu",
        r"rvu.*\d+", r"\d+.*rvu",
        # conversion factor
        r"cf.*p\d+", r"p\d+.*cf", r"conversion.*factor.*\d+", r"\d+.*conversion.*factor",
        # counts
        r"n_orgs?$", r"n_incumbents?$", r"number.*org", r"number.*incumbent",
        r"organization.*count", r"incumbent.*count",
        # bare percentiles
        r"^p\d+$", r"median", r"25th", r"75th", r"90th", r"percentile",
    )
]

COLUMN_CATEGORIES = [
    (re.compile(r"tcc|total.*cash|total.*comp", re.I), "Total Cash Compensation"),
    (re.compile(r"wrvu|work.*rvu|rvu", re.I), "Work RVUs"),
    (re.compile(r"cf|conversion.*factor", re.I), "Conversion Factor"),
    (re.compile(r"n_orgs?|organization|number.*org", re.I), "Organization Count"),
    (re.compile(r"n_incumbents?|incumbent|number.*incumbent", re.I), "Incumbent Count"),
]


def is_compensation_column(name: str) -> bool:
    """Whether a raw header holds compensation or technical figures."""
    if not name:
        return False
    lowered = name.strip().lower()
    if any(p.search(lowered) for p in COLUMN_EXCLUDE_PATTERNS):
        return False
    return any(p.search(lowered) for p in COLUMN_INCLUDE_PATTERNS)


def categorize_column(name: str) -> str:
    for pattern, category in COLUMN_CATEGORIES:
        if pattern.search(name or ""):
            return category
    return "Other Compensation"


def infer_data_type(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return "number"
    text = re.sub(r"[$,%\s]", "", str(value or ""))
    if not text:
        return "string"
    try:
        float(text)
    except ValueError:
        return "string"
    return "number"


def extract_label(row: SurveyRow, kind: MappingKind) -> Optional[str]:
    """Label of a row for one mapping kind; denormalized column first, then raw aliases."""
    value = getattr(row, kind.value, None)
    if not value:
        data = row.data or {}
        for alias in LABEL_ALIASES[kind]:
            if data.get(alias):
                value = data[alias]
                break
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class UnmappedDetector:
    """Finds raw labels not yet covered by a mapping or a learned mapping"""

    def get_unmapped(
        self,
        db: Session,
        *,
        user_id: int,
        kind: MappingKind,
        provider_type: Optional[ProviderType] = None
    ) -> List[UnmappedEntity]:
        """
        Unmapped labels of one kind, one entity per (label, survey source).

        Args:
            db: Database session
            user_id: Owning user
            kind: Mapping kind to scan
            provider_type: Optional provider-type bucket to restrict surveys to

        Returns:
            Entities named by the lower-cased label; frequency is the label's
            uncovered occurrence count across all in-scope sources
        """
        surveys = [
            s for s in survey_crud.get_multi(db, user_id=user_id, limit=None)
            if matches_provider_type(s, provider_type)
        ]
        if not surveys:
            return []

        covered = self._covered_labels(db, user_id=user_id, kind=kind, provider_type=provider_type)

        # label -> [frequency, {source: provider_type}, data_type]
        counts: Dict[str, list] = {}
        for survey_obj in surveys:
            source = survey_obj.survey_source
            display_type = effective_provider_type(survey_obj).value

            for label, data_type in self._labels_for_survey(db, survey_obj, kind):
                key = label.lower()
                if self._is_covered(covered, key, source):
                    continue
                entry = counts.setdefault(key, [0, {}, data_type])
                entry[0] += 1
                entry[1].setdefault(source, display_type)

        unmapped = []
        for key, (frequency, sources, data_type) in counts.items():
            for source, display_type in sources.items():
                entity = UnmappedEntity(
                    name=key,
                    frequency=frequency,
                    survey_source=source,
                    provider_type=display_type,
                )
                if kind == MappingKind.column:
                    entity.data_type = data_type
                    entity.category = categorize_column(key)
                unmapped.append(entity)

        logger.info(
            f"Found {len(unmapped)} unmapped {kind.value} entries for user={user_id} "
            f"across {len(surveys)} surveys (provider_type={provider_type.value if provider_type else 'ALL'})"
        )
        return unmapped

    def _labels_for_survey(self, db: Session, survey_obj: Survey, kind: MappingKind) -> List[Tuple[str, Optional[str]]]:
        if kind == MappingKind.column:
            # Headers are the same on every row; the first row is enough
            first = survey_crud.get_rows(db, survey_id=survey_obj.id, limit=1)
            if not first:
                return []
            data = first[0].data or {}
            return [
                (str(name), infer_data_type(value))
                for name, value in data.items()
                if is_compensation_column(str(name))
            ]

        stmt = select(SurveyRow).where(SurveyRow.survey_id == survey_obj.id).order_by(SurveyRow.row_index)
        labels = []
        for row in db.execute(stmt).scalars():
            label = extract_label(row, kind)
            if label:
                labels.append((label, None))
        return labels

    def _covered_labels(
        self,
        db: Session,
        *,
        user_id: int,
        kind: MappingKind,
        provider_type: Optional[ProviderType]
    ) -> Tuple[Set[Tuple[str, str]], Set[Tuple[str, Optional[str]]]]:
        # Mapping claims are unique per kind whatever their provider-type scope
        mapped = set(mapping_crud.get_claims(db, user_id=user_id, kind=kind).keys())
        learned = {
            (entry.original, entry.survey_source)
            for entry in learned_mapping_service.get_mappings_with_source(
                db, user_id, kind, provider_type.value if provider_type else None
            )
        }
        return mapped, learned

    @staticmethod
    def _is_covered(covered, key: str, source: str) -> bool:
        mapped, learned = covered
        if (key, source) in mapped:
            return True
        # A learned entry without a source covers every source
        return (key, source) in learned or (key, None) in learned


unmapped_detector = UnmappedDetector()
