from sqlalchemy import Column, Integer, String, ForeignKey, Enum, UniqueConstraint
from app.database import Base, TimestampMixin
from app.models.mapping import MappingKind


class LearnedMapping(Base, TimestampMixin):
    """
    Remembered "raw label -> standardized label" correction.

    Lighter than a Mapping: no source list, no claim rules. The unmapped
    detector treats a label with a learned entry as already resolved.
    provider_type and survey_source are metadata, not part of the identity:
    saving the same (type, original) again overwrites the previous entry.
    """
    __tablename__ = "learned_mapping"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    mapping_type = Column(Enum(MappingKind), nullable=False)
    original = Column(String, nullable=False)  # stored lower-cased
    corrected = Column(String, nullable=False)
    provider_type = Column(String, nullable=True)
    survey_source = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'mapping_type', 'original', name='uix_user_learned_mapping'),
    )
