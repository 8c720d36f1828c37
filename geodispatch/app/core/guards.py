"""
Role-based access control for endpoints.
"""

from typing import List
from fastapi import Depends

from geodispatch.app.core.dependencies import get_current_driver
from geodispatch.app.core.exceptions import InsufficientPermissionsError
from geodispatch.app.models.enums import UserRole
from geodispatch.app.services.collaborators import CurrentUser


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/offers")
        async def create_offer(caller: CurrentUser = Depends(require_role([UserRole.DISPATCHER]))):
            ...

    Tokens without a role claim are treated as DRIVER tokens.

    Raises:
        InsufficientPermissionsError: 403 if the token role is not allowed
    """
    async def role_checker(current_user: CurrentUser = Depends(get_current_driver)) -> CurrentUser:
        try:
            role = UserRole(current_user.role or UserRole.DRIVER.value)
        except ValueError:
            raise InsufficientPermissionsError("Invalid role in token")

        if role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join(r.value for r in allowed_roles)}",
                details={"role": role.value},
            )
        return current_user

    return role_checker
