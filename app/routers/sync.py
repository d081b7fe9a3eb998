from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.user_context import get_user_id
from app.core.logging_config import logger
from app.core.exceptions import (
    CloudSyncError, CloudSyncNotConfiguredError, QuotaExceededError
)
from app.models.mapping import MappingKind
from app.schemas.sync import (
    ConnectivityStatus, SyncSurveyResponse, MigrationRequest, MigrationResponse, QueueStatus, OnlineRequest
)
from app.services.cloud_sync import cloud_sync_service


router = APIRouter()


def sync_http_exception(error: CloudSyncError) -> HTTPException:
    """Map a sync failure onto the HTTP error the client sees."""
    if isinstance(error, CloudSyncNotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))
    if isinstance(error, QuotaExceededError):
        return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Cloud sync failed: {str(error)}"
    )


async def _await_or_queue(user_id: int, future):
    """Await the write when online; answer 202 with the queue size when it was queued."""
    adapter = cloud_sync_service.get_adapter(user_id)
    if adapter.online:
        return await future
    queued = QueueStatus(online=False, queued_operations=adapter.queued_operations)
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=queued.model_dump())


@router.get("/status", response_model=ConnectivityStatus)
def get_connectivity(_user_id: int = Depends(get_user_id)):
    """Last known state of the remote store: checking, connected, error or disconnected."""
    return cloud_sync_service.monitor.status()


@router.post("/status/refresh", response_model=ConnectivityStatus)
async def refresh_connectivity(_user_id: int = Depends(get_user_id)):
    return await cloud_sync_service.monitor.refresh()


@router.get("/queue", response_model=QueueStatus)
def get_queue(user_id: int = Depends(get_user_id)):
    try:
        return cloud_sync_service.queue_status(user_id)
    except CloudSyncError as e:
        raise sync_http_exception(e)


@router.post("/online", response_model=QueueStatus)
async def set_online(request: OnlineRequest, user_id: int = Depends(get_user_id)):
    """
    Mark the user's sync as online or offline.

    Writes issued while offline are queued; going online runs them once in
    order and keeps any that fail for the next time.
    """
    try:
        return await cloud_sync_service.set_online(user_id, request.online)
    except CloudSyncError as e:
        raise sync_http_exception(e)


@router.post("/surveys/{survey_id}", response_model=SyncSurveyResponse)
async def sync_survey(
    survey_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Mirror one survey and its rows.

    Returns 202 with the queue size when sync is offline.

    Raises:
        HTTPException 404: If survey not found
        HTTPException 429: If the write quota is exhausted
        HTTPException 503: If cloud sync is not configured
    """
    try:
        logger.info(f"Syncing survey id={survey_id} for user={user_id}")
        future = cloud_sync_service.sync_survey(db, user_id, survey_id)
        return await _await_or_queue(user_id, future)
    except CloudSyncError as e:
        logger.error(f"Sync of survey id={survey_id} failed: {str(e)}")
        raise sync_http_exception(e)


@router.post("/migrate", response_model=MigrationResponse)
async def migrate_surveys(
    request: MigrationRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Copy surveys to the cloud, continuing past failed surveys.

    Failed surveys are listed in ``errors``.
    """
    try:
        future = cloud_sync_service.migrate_surveys(db, user_id, request.survey_ids)
        return await _await_or_queue(user_id, future)
    except CloudSyncError as e:
        raise sync_http_exception(e)


@router.post("/mappings/{kind}")
async def sync_mappings(
    kind: MappingKind,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    try:
        future = cloud_sync_service.sync_mappings(db, user_id, kind)
        result = await _await_or_queue(user_id, future)
        if isinstance(result, JSONResponse):
            return result
        return {"kind": kind, "chunks_committed": result}
    except CloudSyncError as e:
        raise sync_http_exception(e)


@router.post("/learned-mappings")
async def sync_learned_mappings(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    try:
        future = cloud_sync_service.sync_learned_mappings(db, user_id)
        result = await _await_or_queue(user_id, future)
        if isinstance(result, JSONResponse):
            return result
        return {"chunks_committed": result}
    except CloudSyncError as e:
        raise sync_http_exception(e)
