from fastapi import Depends
from enum import Enum
import logging

from auth import get_current_user
from errors import ForbiddenError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    STUDENT = "STUDENT"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


MODERATOR_ROLES = (Role.STAFF, Role.ADMIN)


def require_roles(*roles: Role):
    """
    Dependency factory enforcing role membership.

    RULES:
    1. Caller must be authenticated (401 otherwise, from get_current_user)
    2. Caller's role must be one of `roles` (403 otherwise)
    """
    allowed = {r.value if isinstance(r, Role) else r for r in roles}

    async def checker(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user["role"] not in allowed:
            logger.warning(
                f"[PERMISSION] user:{current_user['user_id']} role={current_user['role']} "
                f"denied (requires {sorted(allowed)})"
            )
            raise ForbiddenError("Forbidden")
        return current_user

    return checker


def is_admin(user: dict) -> bool:
    return user.get("role") == Role.ADMIN.value
