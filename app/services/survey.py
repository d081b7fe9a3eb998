from typing import List, Optional, Tuple
from fastapi import HTTPException, UploadFile, status
from sqlalchemy.orm import Session
from app.crud import survey as survey_crud
from app.models.survey import Survey, SurveyRow, ProviderType, DataCategory
from app.schemas.survey import ColumnMetadata
from app.services.survey_upload import survey_upload_service
from app.services.learned_mapping import learned_mapping_service
from app.services.provider_type import derive_survey_source, derive_data_category
from app.core.logging_config import logger


class SurveyService:
    """
    Service layer for uploaded surveys.

    Rows are written once at upload and never edited; re-uploading is the
    only way to change them.
    """

    def __init__(self):
        self.crud = survey_crud

    def get_survey(self, db: Session, survey_id: int, user_id: int) -> Survey:
        """
        Get a survey by ID.

        Raises:
            HTTPException 404: If survey not found
        """
        survey = self.crud.get(db=db, id=survey_id, user_id=user_id)

        if not survey:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Survey not found"
            )

        return survey

    def get_surveys(
        self,
        db: Session,
        user_id: int,
        skip: int = 0,
        limit: Optional[int] = 100
    ) -> List[Survey]:
        return self.crud.get_multi(db=db, skip=skip, limit=limit, user_id=user_id)

    def get_rows(
        self,
        db: Session,
        survey_id: int,
        user_id: int,
        skip: int = 0,
        limit: Optional[int] = 500
    ) -> List[SurveyRow]:
        survey = self.get_survey(db, survey_id, user_id)
        return self.crud.get_rows(db, survey_id=survey.id, skip=skip, limit=limit)

    async def upload_survey(
        self,
        db: Session,
        user_id: int,
        file: UploadFile,
        name: str,
        year: str,
        survey_type: str,
        provider_type: Optional[ProviderType] = None,
        data_category: Optional[DataCategory] = None
    ) -> Tuple[Survey, List[ColumnMetadata], int]:
        """
        Parse an uploaded file and store it with its rows.

        Args:
            db: Database session
            user_id: Owning user
            file: CSV or Excel upload
            name: Display name
            year: Survey year
            survey_type: Vendor label, e.g. "MGMA Physician"
            provider_type: Explicit provider type, if known
            data_category: Explicit data category; derived from survey_type otherwise

        Returns:
            (stored Survey, detected columns, number of skipped rows)

        Raises:
            ValueError: If the file cannot be parsed
            EmptySurveyError: If no valid rows remain
        """
        df, skipped = await survey_upload_service.parse_file(file)

        saved_mapping = learned_mapping_service.get_column_mapping(db, user_id)
        columns, rows = survey_upload_service.build_rows(df, saved_mapping=saved_mapping)

        survey_data = {
            "name": name,
            "year": str(year),
            "survey_type": survey_type,
            "survey_source": derive_survey_source(survey_type),
            "provider_type": provider_type,
            "data_category": data_category or derive_data_category(survey_type),
            "file_metadata": {
                "file_name": file.filename,
                "headers": [str(col) for col in df.columns],
                "skipped_rows": skipped,
            },
        }
        survey = self.crud.create_with_rows(db, survey_data=survey_data, rows=rows, user_id=user_id)

        logger.info(
            f"Uploaded survey '{name}' ({survey.survey_source}, {year}) for user={user_id}: "
            f"{len(rows)} rows, {skipped} skipped"
        )
        return survey, columns, skipped

    def delete_survey(self, db: Session, survey_id: int, user_id: int) -> Survey:
        """
        Delete a survey and its rows.

        Raises:
            HTTPException 404: If survey not found
        """
        survey = self.crud.delete(db=db, id=survey_id, user_id=user_id)

        if not survey:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Survey not found"
            )

        logger.info(f"Deleted survey id={survey_id} for user={user_id}")
        return survey


survey_service = SurveyService()
