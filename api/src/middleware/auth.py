"""
JWT authentication dependencies for FastAPI.

Provides:
- Token extraction from the Authorization header or the jwt cookie
- ``protect``: the full verification chain, attaching the principal to
  ``request.state.user``
- ``is_logged_in``: passive variant that never rejects the request
- Cookie helpers for issuing and clearing the token cookie
"""

from typing import Optional

import structlog
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.src.config import Settings
from api.src.dependencies import get_auth_service, get_app_settings
from api.src.exceptions import UnauthorizedError
from api.src.models.auth import CurrentUser
from api.src.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

# HTTP Bearer token scheme for dependency injection
security = HTTPBearer(auto_error=False)

NOT_LOGGED_IN = "You are not logged in! Please log in to get access."
LOGGED_OUT_COOKIE_VALUE = "loggedout"
LOGGED_OUT_COOKIE_SECONDS = 10


def extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_name: str = "jwt",
) -> Optional[str]:
    """
    Extract the JWT from the request.

    The Authorization header wins over the cookie.

    Args:
        request: HTTP request
        credentials: Parsed bearer credentials, if any
        cookie_name: Name of the token cookie

    Returns:
        JWT token or None if not found
    """
    if credentials and credentials.scheme.lower() == "bearer" and credentials.credentials.strip():
        return credentials.credentials.strip()
    return request.cookies.get(cookie_name) or None


async def protect(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> CurrentUser:
    """
    Require an authenticated principal.

    Raises:
        UnauthorizedError: No token present, user gone or password changed
        TokenInvalidError / TokenExpiredError: Token failed verification
    """
    token = extract_token(request, credentials, settings.jwt_cookie_name)
    if not token:
        logger.warning(
            "auth_missing_token",
            path=request.url.path,
            method=request.method,
            client=request.client.host if request.client else None
        )
        raise UnauthorizedError(NOT_LOGGED_IN)

    current_user = await auth_service.resolve_principal(token)
    request.state.user = current_user

    logger.debug(
        "request_authenticated",
        path=request.url.path,
        method=request.method,
        user_id=current_user.id,
        role=current_user.role.value
    )
    return current_user


async def is_logged_in(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> Optional[CurrentUser]:
    """Attach the principal when the token checks out; otherwise carry on anonymously."""
    token = extract_token(request, credentials, settings.jwt_cookie_name)
    current_user = await auth_service.try_resolve_principal(token)
    request.state.user = current_user
    return current_user


# ============================================================================
# COOKIE HELPERS
# ============================================================================


def set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    """Send the token as an http-only cookie (secure in production)."""
    response.set_cookie(
        key=settings.jwt_cookie_name,
        value=token,
        max_age=settings.jwt_cookie_max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_token_cookie(response: Response, settings: Settings) -> None:
    """Overwrite the token cookie with a short-lived placeholder."""
    response.set_cookie(
        key=settings.jwt_cookie_name,
        value=LOGGED_OUT_COOKIE_VALUE,
        max_age=LOGGED_OUT_COOKIE_SECONDS,
        httponly=True,
    )
