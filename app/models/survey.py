import enum
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, func
from sqlalchemy.orm import relationship
from app.database import Base, TimestampMixin, JSONType


class ProviderType(str, enum.Enum):
    PHYSICIAN = "PHYSICIAN"
    APP = "APP"
    CALL = "CALL"
    CUSTOM = "CUSTOM"


class DataCategory(str, enum.Enum):
    COMPENSATION = "COMPENSATION"
    CALL_PAY = "CALL_PAY"
    MOONLIGHTING = "MOONLIGHTING"
    CUSTOM = "CUSTOM"


class Survey(Base, TimestampMixin):
    """One uploaded survey file. Deleting it deletes its rows."""
    __tablename__ = "survey"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    year = Column(String, nullable=False)
    survey_type = Column(String, nullable=False)  # vendor label, e.g. "MGMA Physician"
    survey_source = Column(String, nullable=False)  # vendor, e.g. "MGMA"
    provider_type = Column(Enum(ProviderType), nullable=True)  # null on legacy uploads
    data_category = Column(Enum(DataCategory), nullable=True)
    row_count = Column(Integer, nullable=False, default=0)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    file_metadata = Column("metadata", JSONType, nullable=True)  # file name, original headers

    user = relationship("User", back_populates="surveys")
    rows = relationship(
        "SurveyRow",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="SurveyRow.row_index",
    )


class SurveyRow(Base):
    """One CSV data line, denormalized for label lookups."""
    __tablename__ = "survey_row"

    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(Integer, ForeignKey("survey.id", ondelete="CASCADE"), nullable=False, index=True)
    row_index = Column(Integer, nullable=False)
    specialty = Column(String, nullable=True)
    region = Column(String, nullable=True)
    provider_type = Column(String, nullable=True)
    variable = Column(String, nullable=True)
    p25 = Column(Float, nullable=True)
    p50 = Column(Float, nullable=True)
    p75 = Column(Float, nullable=True)
    p90 = Column(Float, nullable=True)
    n_orgs = Column(Integer, nullable=True)
    n_incumbents = Column(Integer, nullable=True)
    data = Column(JSONType, nullable=False)  # raw record keyed by original headers

    survey = relationship("Survey", back_populates="rows")
