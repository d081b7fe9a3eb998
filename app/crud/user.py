from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
from app.models.user import User
from app.core.security import get_password_hash


class CRUDUser:
    """
    CRUD operations for User model.

    Users are the isolation boundary for every other record, so they do not
    go through the user-filtered CRUDBase.
    """

    def __init__(self):
        self.model = User

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.lower())
        return db.execute(stmt).scalar_one_or_none()

    def get(self, db: Session, user_id: int) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return db.execute(stmt).scalar_one_or_none()

    def create(
        self,
        db: Session,
        *,
        email: str,
        password: str,
        is_active: bool = True
    ) -> User:
        """
        Create a new user with hashed password.

        Raises:
            ValueError: If the email is already registered
        """
        db_user = User(
            email=email.lower(),
            hashed_password=get_password_hash(password),
            is_active=is_active,
            failed_login_attempts=0,
        )
        db.add(db_user)

        try:
            db.commit()
            db.refresh(db_user)
        except IntegrityError:
            db.rollback()
            raise ValueError(f"User with email {email} already exists")

        return db_user

    def record_failed_login(self, db: Session, *, db_user: User, locked_until: Optional[datetime]) -> User:
        db_user.failed_login_attempts = (db_user.failed_login_attempts or 0) + 1
        if locked_until is not None:
            db_user.locked_until = locked_until
        db.commit()
        db.refresh(db_user)
        return db_user

    def reset_failed_logins(self, db: Session, *, db_user: User) -> User:
        db_user.failed_login_attempts = 0
        db_user.locked_until = None
        db.commit()
        db.refresh(db_user)
        return db_user


# Create singleton instance
user = CRUDUser()
