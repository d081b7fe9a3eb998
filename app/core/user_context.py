from fastapi import Depends
from app.models.user import User
from app.dependencies import get_current_user


def get_user_id(current_user: User = Depends(get_current_user)) -> int:
    """
    FastAPI dependency that extracts the owning user id from the authenticated user.

    Every survey, mapping and learned mapping is scoped to one user. The id is
    passed explicitly through service and CRUD layers, and it is also the
    `{uid}` segment of remote document paths (`users/{uid}/...`).
    """
    return current_user.id
