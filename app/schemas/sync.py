from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class ConnectivityStatus(BaseModel):
    status: str  # checking | connected | error | disconnected
    error: Optional[str] = None
    latency_ms: Optional[float] = None
    last_checked: Optional[datetime] = None


class SyncSurveyResponse(BaseModel):
    survey_id: int
    rows_written: int
    chunks_committed: int
    progress: List[float] = []


class MigrationRequest(BaseModel):
    survey_ids: Optional[List[int]] = None  # None means every survey


class MigrationResponse(BaseModel):
    migrated: int
    failed: int
    errors: List[str] = []


class QueueStatus(BaseModel):
    online: bool
    queued_operations: int = Field(..., ge=0)


class OnlineRequest(BaseModel):
    online: bool
