from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.user_context import get_user_id
from app.core.exceptions import CloudSyncError
from app.core.logging_config import logger
from app.schemas.storage import ExportBundle, ClearAllResponse
from app.services.storage import storage_service
from app.routers.sync import sync_http_exception


router = APIRouter()


@router.get("/export", response_model=ExportBundle)
def export_all(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """Backup of every survey record: {surveys, exportDate, version, totalSurveys}."""
    return storage_service.export_all(db, user_id)


@router.delete("", response_model=ClearAllResponse)
async def clear_all(
    include_remote: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Delete all surveys, mappings and learned mappings.

    Args:
        include_remote: Also delete the user's cloud documents (cloud first)

    Raises:
        HTTPException 503: If include_remote is set but cloud sync is not configured
    """
    try:
        logger.info(f"Clearing all data for user={user_id} (include_remote={include_remote})")
        return await storage_service.clear_all(db, user_id, include_remote=include_remote)
    except CloudSyncError as e:
        logger.error(f"Clear-all for user={user_id} failed: {str(e)}")
        raise sync_http_exception(e)
