from typing import Generic, TypeVar, Type, Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import select
from app.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """
    Generic CRUD class with per-user isolation via explicit user_id.

    Every query filters on the owning user. The user id is always passed
    explicitly from the router layer.

    Type Parameters:
        ModelType: SQLAlchemy model class with a ``user_id`` column
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: int, user_id: int) -> Optional[ModelType]:
        """
        Retrieve a single record by ID owned by the user.

        Returns:
            Model instance or None if not found or owned by someone else
        """
        stmt = select(self.model).where(
            self.model.id == id,
            self.model.user_id == user_id
        )
        return db.execute(stmt).scalar_one_or_none()

    def get_multi(
        self,
        db: Session,
        *,
        skip: int = 0,
        limit: Optional[int] = 100,
        user_id: int
    ) -> List[ModelType]:
        """
        Retrieve the user's records with pagination, oldest first.

        A ``limit`` of None returns every record.
        """
        stmt = select(self.model).where(
            self.model.user_id == user_id
        ).order_by(self.model.id).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(db.execute(stmt).scalars().all())

    def delete(self, db: Session, *, id: int, user_id: int) -> Optional[ModelType]:
        """
        Delete a record by ID owned by the user.

        Returns:
            Deleted model instance or None if not found
        """
        obj = self.get(db=db, id=id, user_id=user_id)
        if obj:
            db.delete(obj)
            db.commit()
        return obj
