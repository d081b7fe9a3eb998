from pydantic import BaseModel
from typing import List, Optional, Dict, Any


class ExportBundle(BaseModel):
    """Backup format; field names match the download the web client produces"""
    surveys: List[Dict[str, Any]]
    exportDate: str
    version: str = "1.0"
    totalSurveys: int


class ClearAllResponse(BaseModel):
    surveys_deleted: int
    mappings_deleted: int
    learned_mappings_deleted: int
    remote_documents_deleted: Optional[int] = None
