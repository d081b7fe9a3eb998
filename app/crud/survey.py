from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import select, delete
from app.crud.base import CRUDBase
from app.models.survey import Survey, SurveyRow
from app.core.logging_config import logger


class CRUDSurvey(CRUDBase[Survey]):
    """
    CRUD operations for Survey and its rows.

    Rows are only written together with their survey and only removed
    with it.
    """

    def create_with_rows(
        self,
        db: Session,
        *,
        survey_data: Dict[str, Any],
        rows: List[Dict[str, Any]],
        user_id: int
    ) -> Survey:
        """
        Create a survey and all of its rows in one transaction.

        Args:
            survey_data: Survey column values (name, year, survey_type, ...)
            rows: Row column values; row_index is assigned from list order
        """
        db_obj = self.model(user_id=user_id, row_count=len(rows), **survey_data)
        db.add(db_obj)
        db.flush()

        db.add_all(
            SurveyRow(survey_id=db_obj.id, row_index=idx, **row)
            for idx, row in enumerate(rows)
        )
        db.commit()
        db.refresh(db_obj)
        logger.info(f"Stored survey id={db_obj.id} with {len(rows)} rows for user={user_id}")
        return db_obj

    def get_rows(
        self,
        db: Session,
        *,
        survey_id: int,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[SurveyRow]:
        """
        Rows of one survey in upload order.

        Note: callers must have checked survey ownership with get().
        """
        stmt = select(SurveyRow).where(
            SurveyRow.survey_id == survey_id
        ).order_by(SurveyRow.row_index).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(db.execute(stmt).scalars().all())

    def delete(self, db: Session, *, id: int, user_id: int) -> Optional[Survey]:
        """Delete a survey and cascade to its rows."""
        obj = self.get(db=db, id=id, user_id=user_id)
        if obj:
            db.execute(delete(SurveyRow).where(SurveyRow.survey_id == obj.id))
            db.delete(obj)
            db.commit()
        return obj

    def delete_all(self, db: Session, *, user_id: int) -> int:
        survey_ids = select(Survey.id).where(Survey.user_id == user_id)
        db.execute(delete(SurveyRow).where(SurveyRow.survey_id.in_(survey_ids)))
        result = db.execute(delete(Survey).where(Survey.user_id == user_id))
        db.commit()
        return result.rowcount or 0


# Create a singleton instance
survey = CRUDSurvey(Survey)
