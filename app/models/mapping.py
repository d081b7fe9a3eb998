import enum
from sqlalchemy import Column, Integer, String, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base, TimestampMixin
from app.models.survey import ProviderType


class MappingKind(str, enum.Enum):
    specialty = "specialty"
    column = "column"
    region = "region"
    provider_type = "provider_type"
    variable = "variable"


class Mapping(Base, TimestampMixin):
    """
    A canonical name grouping one or more raw labels observed in surveys.

    Rows are never linked to mappings by foreign key; a row's label resolves
    to a mapping when a source entry matches its (label, survey source).
    """
    __tablename__ = "mapping"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(Enum(MappingKind), nullable=False, index=True)
    canonical_name = Column(String, nullable=False)
    provider_type = Column(Enum(ProviderType), nullable=True)

    sources = relationship(
        "MappingSource",
        back_populates="mapping",
        cascade="all, delete-orphan",
        order_by="MappingSource.position",
    )


class MappingSource(Base):
    """One raw label from one survey source, claimed by exactly one mapping per kind."""
    __tablename__ = "mapping_source"

    id = Column(Integer, primary_key=True, index=True)
    mapping_id = Column(Integer, ForeignKey("mapping.id", ondelete="CASCADE"), nullable=False, index=True)
    # user_id and kind are copied from the parent so the claim constraint can be enforced
    user_id = Column(Integer, nullable=False)
    kind = Column(Enum(MappingKind), nullable=False)
    raw_label = Column(String, nullable=False)
    label_key = Column(String, nullable=False)  # lower-cased raw_label
    survey_source = Column(String, nullable=False)
    frequency = Column(Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)

    mapping = relationship("Mapping", back_populates="sources")

    __table_args__ = (
        UniqueConstraint('user_id', 'kind', 'label_key', 'survey_source', name='uix_mapping_source_claim'),
    )
