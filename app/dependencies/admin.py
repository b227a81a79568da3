import logging

from fastapi import Depends, HTTPException, status

from app.models.user import User
from app.utils.token import get_current_user

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def is_admin(user: User) -> bool:
    return user.role == ADMIN_ROLE


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not is_admin(current_user):
        logger.warning(f"User {current_user.id} denied admin access")
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin access required")
    return current_user
