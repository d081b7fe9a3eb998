from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.user import UserCreate, UserResponse, LoginRequest, LoginResponse
from app.services.auth import auth_service

router = APIRouter()


@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def signup(user_data: UserCreate, db: Session = Depends(get_db)):
    """
    Register a new account.

    Raises:
        HTTPException 400: If the password is too weak
        HTTPException 409: If the email is already registered
    """
    return auth_service.signup(db, email=user_data.email, password=user_data.password)


@router.post("/login", response_model=LoginResponse)
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """
    Verify credentials and return a bearer token.

    Errors carry short user-facing messages (wrong password, too many
    attempts, disabled account) rather than internal details.
    """
    return auth_service.login(db, email=credentials.email, password=credentials.password)


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user
