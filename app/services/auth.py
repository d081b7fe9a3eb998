from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError
from app.core.config import settings
from app.core.security import verify_password, create_access_token
from app.crud.user import user as user_crud
from app.models.user import User
from app.schemas.user import LoginResponse, UserResponse
from app.core.logging_config import logger

MIN_PASSWORD_LENGTH = 6

# User-facing messages; raw backend errors never reach the client
AUTH_MESSAGES = {
    "wrong_password": "Incorrect password. Please try again.",
    "user_not_found": "No account found with this email. Please sign up first.",
    "too_many_attempts": "Too many failed attempts. Please try again later.",
    "disabled": "This account has been disabled. Contact support.",
    "email_in_use": "This email is already registered. Please sign in instead.",
    "weak_password": f"Password is too weak. Use at least {MIN_PASSWORD_LENGTH} characters.",
    "network": "Network error. Check your internet connection.",
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuthService:
    """Sign-up and sign-in with a lockout after repeated failures"""

    def signup(self, db: Session, email: str, password: str) -> User:
        """
        Register a new account.

        Raises:
            HTTPException 400: If the password is too weak
            HTTPException 409: If the email is already registered
        """
        if len(password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=AUTH_MESSAGES["weak_password"])

        if user_crud.get_by_email(db, email=email):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=AUTH_MESSAGES["email_in_use"])

        try:
            user = user_crud.create(db, email=email, password=password)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=AUTH_MESSAGES["email_in_use"])

        logger.info(f"Registered user id={user.id}")
        return user

    def login(self, db: Session, email: str, password: str) -> LoginResponse:
        """
        Verify credentials and issue an access token.

        After MAX_FAILED_LOGIN_ATTEMPTS wrong passwords the account is locked
        for LOGIN_LOCKOUT_MINUTES.

        Raises:
            HTTPException 401: Unknown email or wrong password
            HTTPException 403: Disabled account
            HTTPException 429: Account locked
            HTTPException 503: Database unreachable
        """
        try:
            user = user_crud.get_by_email(db, email=email)
        except OperationalError as e:
            logger.error(f"Login failed, database unreachable: {str(e)}")
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=AUTH_MESSAGES["network"])

        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTH_MESSAGES["user_not_found"])

        if not user.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=AUTH_MESSAGES["disabled"])

        now = datetime.now(timezone.utc)
        locked_until = _as_utc(user.locked_until)
        if locked_until and locked_until > now:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=AUTH_MESSAGES["too_many_attempts"])

        if locked_until:
            # Lock has expired; start counting again
            user = user_crud.reset_failed_logins(db, db_user=user)

        if not verify_password(password, user.hashed_password):
            attempts = (user.failed_login_attempts or 0) + 1
            lock = None
            if attempts >= settings.MAX_FAILED_LOGIN_ATTEMPTS:
                lock = now + timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
            user_crud.record_failed_login(db, db_user=user, locked_until=lock)

            if lock:
                logger.warning(f"Locked user id={user.id} after {attempts} failed logins")
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=AUTH_MESSAGES["too_many_attempts"]
                )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTH_MESSAGES["wrong_password"])

        if user.failed_login_attempts:
            user = user_crud.reset_failed_logins(db, db_user=user)

        access_token = create_access_token(data={"id": str(user.id), "email": user.email})
        logger.info(f"User id={user.id} signed in")
        return LoginResponse(user=UserResponse.model_validate(user), access_token=access_token)


auth_service = AuthService()
