"""
Role-based access control for FastAPI.

``RoleChecker`` gates a route on the principal's role. It depends on
``protect``, so the full authentication chain always runs first and the
attached principal is what gets checked.

Example:
    @router.delete("/{id}", dependencies=[Depends(restrict_to(Role.ADMIN))])
    async def delete_tour(...): ...
"""

from typing import List, Sequence, Union

import structlog
from fastapi import Depends, Request

from api.src.exceptions import ForbiddenError
from api.src.middleware.auth import protect
from api.src.models.auth import CurrentUser, Role

logger = structlog.get_logger(__name__)


class RoleChecker:
    """
    Dependency class for checking user roles in FastAPI endpoints.

    Example:
        @app.get("/admin")
        async def admin_only(user: CurrentUser = Depends(RoleChecker([Role.ADMIN]))):
            return {"message": "Admin access"}
    """

    def __init__(self, required_roles: Union[Role, Sequence[Role]]):
        """
        Initialize role checker.

        Args:
            required_roles: Roles allowed through, user must have one of them
        """
        if isinstance(required_roles, Role):
            required_roles = [required_roles]
        self.required_roles: List[Role] = list(required_roles)

    async def __call__(self, request: Request, user: CurrentUser = Depends(protect)) -> CurrentUser:
        """
        Check if the authenticated user has one of the required roles.

        Raises:
            ForbiddenError: If the user's role is not allowed
        """
        if not user.has_any_role(self.required_roles):
            logger.warning(
                "role_checker_access_denied",
                path=request.url.path,
                method=request.method,
                user_id=user.id,
                user_role=user.role.value,
                required_roles=[r.value for r in self.required_roles]
            )
            raise ForbiddenError()

        return user


def restrict_to(*roles: Role) -> RoleChecker:
    """Shorthand for ``RoleChecker(list(roles))``."""
    return RoleChecker(list(roles))


# Common role checkers
require_admin = RoleChecker([Role.ADMIN])
require_staff = RoleChecker([Role.ADMIN, Role.LEAD_GUIDE])
