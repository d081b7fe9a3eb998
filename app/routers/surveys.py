from fastapi import APIRouter, Depends, UploadFile, File, Form, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from app.database import get_db
from app.core.user_context import get_user_id
from app.core.exceptions import EmptySurveyError, CloudSyncError
from app.core.logging_config import logger
from app.models.survey import DataCategory
from app.schemas.survey import SurveyResponse, SurveyUploadResponse, SurveyRowResponse
from app.services.survey import survey_service
from app.services.provider_type import normalize_provider_type
from app.services.storage import storage_service
from app.routers.sync import sync_http_exception


router = APIRouter()


@router.post("/upload", response_model=SurveyUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_survey(
    file: UploadFile = File(...),
    name: str = Form(...),
    year: str = Form(...),
    survey_type: str = Form(...),
    provider_type: Optional[str] = Form(None),
    data_category: Optional[DataCategory] = Form(None),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Upload a CSV or Excel survey file.

    Malformed rows are skipped; the response reports how many. Columns are
    matched to row fields automatically, using learned column corrections
    first.

    Raises:
        HTTPException 400: If the file cannot be parsed or has no valid rows
    """
    try:
        logger.info(f"Processing survey upload for user={user_id}, file={file.filename}")

        survey, columns, skipped = await survey_service.upload_survey(
            db=db,
            user_id=user_id,
            file=file,
            name=name,
            year=year,
            survey_type=survey_type,
            provider_type=normalize_provider_type(provider_type),
            data_category=data_category,
        )

        return SurveyUploadResponse(
            survey=SurveyResponse.model_validate(survey),
            columns=columns,
            skipped_rows=skipped
        )

    except EmptySurveyError as e:
        logger.warning(f"Empty survey upload for user={user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except ValueError as e:
        logger.error(f"File parsing error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in survey upload: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process file: {str(e)}"
        )


@router.get("", response_model=List[SurveyResponse])
def get_surveys(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    return survey_service.get_surveys(db=db, user_id=user_id, skip=skip, limit=limit)


@router.get("/{survey_id}", response_model=SurveyResponse)
def get_survey(
    survey_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Raises:
        HTTPException 404: If survey not found
    """
    return survey_service.get_survey(db=db, survey_id=survey_id, user_id=user_id)


@router.get("/{survey_id}/rows", response_model=List[SurveyRowResponse])
def get_survey_rows(
    survey_id: int,
    skip: int = 0,
    limit: int = 500,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """Rows of one survey in upload order."""
    return survey_service.get_rows(db=db, survey_id=survey_id, user_id=user_id, skip=skip, limit=limit)


@router.delete("/{survey_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_survey(
    survey_id: int,
    include_remote: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id)
):
    """
    Delete a survey and its rows, and with include_remote its cloud copy.

    Raises:
        HTTPException 404: If survey not found
        HTTPException 503: If include_remote is set but cloud sync is not configured
    """
    try:
        await storage_service.delete_survey(db, user_id, survey_id, include_remote=include_remote)
    except CloudSyncError as e:
        raise sync_http_exception(e)
