"""FastAPI middleware components.

This package contains the authentication chain, role gating and error
normalization used by the routers and the application factory.
"""

from api.src.middleware.auth import (
    is_logged_in,
    protect,
)
from api.src.middleware.errors import ErrorNormalizer
from api.src.middleware.rbac import RoleChecker, restrict_to

__all__ = [
    # Auth chain
    "protect",
    "is_logged_in",
    # Role gating
    "RoleChecker",
    "restrict_to",
    # Errors
    "ErrorNormalizer",
]
