from app.services.survey import survey_service
from app.services.mapping import mapping_service
from .learned_mapping import learned_mapping_service
from .unmapped import unmapped_detector
from .storage import storage_service
from .analytics import analytics_service
from .auth import auth_service

__all__ = [
    "survey_service",
    "mapping_service",
    "learned_mapping_service",
    "unmapped_detector",
    "storage_service",
    "analytics_service",
    "auth_service",
]
