from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import PersonRole


def require_roles(*roles: PersonRole):
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        Depends(require_roles(PersonRole.ADMIN, PersonRole.HOD))
    """
    allowed = {PersonRole(r) for r in roles}

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker
