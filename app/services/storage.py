from datetime import datetime, timezone
from sqlalchemy.orm import Session
from app.crud import survey as survey_crud, mapping as mapping_crud
from app.crud.learned_mapping import learned_mapping_crud
from app.schemas.storage import ExportBundle, ClearAllResponse
from app.schemas.survey import SurveyResponse
from app.services.survey import survey_service
from app.services.cloud_sync import cloud_sync_service
from app.core.logging_config import logger

EXPORT_VERSION = "1.0"


class StorageService:
    """User-facing storage management: export, clear-all and per-survey delete"""

    def export_all(self, db: Session, user_id: int) -> ExportBundle:
        """
        Build the JSON backup of every survey record.

        Returns:
            ExportBundle with survey metadata, an ISO-8601 export date and the count
        """
        surveys = survey_crud.get_multi(db, user_id=user_id, limit=None)
        records = [SurveyResponse.model_validate(s).model_dump(mode="json") for s in surveys]

        logger.info(f"Exported {len(records)} surveys for user={user_id}")
        return ExportBundle(
            surveys=records,
            exportDate=datetime.now(timezone.utc).isoformat(),
            version=EXPORT_VERSION,
            totalSurveys=len(records),
        )

    async def clear_all(self, db: Session, user_id: int, include_remote: bool = False) -> ClearAllResponse:
        """
        Delete every survey, mapping and learned mapping of the user.

        With ``include_remote`` the remote mirror is cleared first, so a
        remote failure leaves local data untouched.

        Raises:
            CloudSyncNotConfiguredError: If include_remote is set without a configured backend
            CloudSyncError: If the remote delete fails
        """
        remote_deleted = None
        if include_remote:
            remote_deleted = await cloud_sync_service.clear_user_data(user_id)

        mappings_deleted = mapping_crud.delete_all(db, user_id=user_id)
        learned_deleted = learned_mapping_crud.delete_by_type(db, user_id)
        surveys_deleted = survey_crud.delete_all(db, user_id=user_id)

        logger.info(
            f"Cleared all data for user={user_id}: {surveys_deleted} surveys, "
            f"{mappings_deleted} mappings, {learned_deleted} learned mappings"
        )
        return ClearAllResponse(
            surveys_deleted=surveys_deleted,
            mappings_deleted=mappings_deleted,
            learned_mappings_deleted=learned_deleted,
            remote_documents_deleted=remote_deleted,
        )

    async def delete_survey(self, db: Session, user_id: int, survey_id: int, include_remote: bool = False) -> int:
        """
        Delete one survey locally, and optionally its remote documents.

        Raises:
            HTTPException 404: If survey not found
        """
        survey = survey_service.get_survey(db, survey_id, user_id)
        row_count = survey.row_count

        if include_remote:
            await cloud_sync_service.delete_survey(user_id, survey_id, row_count)

        survey_service.delete_survey(db, survey_id, user_id)
        return survey_id


storage_service = StorageService()
