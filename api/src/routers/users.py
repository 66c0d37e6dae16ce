"""
Users router: authentication flows, self-service and user administration.

Provides REST API endpoints for:
- Signup, login, logout
- Password reset and password update
- The current user's own profile (me / updateMe / deleteMe)
- Admin-only user management (CRUD)
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Body, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from api.src.config import Settings
from api.src.dependencies import get_app_settings, get_auth_service, get_users_repo
from api.src.exceptions import OperationalError
from api.src.middleware.auth import (
    clear_token_cookie,
    is_logged_in,
    protect,
    set_token_cookie,
)
from api.src.middleware.rbac import require_admin
from api.src.models.auth import (
    CurrentUser,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
)
from api.src.repositories.entity_repo import EntityRepository
from api.src.routers import factory
from api.src.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

SELF_EDITABLE_FIELDS = ("name", "email")
PASSWORD_FIELDS = ("password", "passwordConfirm")


def send_token(
    user: Dict[str, Any], token: str, settings: Settings, status_code: int = status.HTTP_200_OK
) -> JSONResponse:
    """Respond with the token in the body and as the jwt cookie."""
    response = JSONResponse(
        status_code=status_code,
        content=factory.encode({"status": "success", "token": token, "data": {"user": user}}),
    )
    set_token_cookie(response, token, settings)
    return response


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


# ============================================================================
# AUTHENTICATION ENDPOINTS
# ============================================================================


@router.post("/signup", status_code=status.HTTP_201_CREATED, summary="Create an account")
async def signup(
    request: Request,
    body: SignupRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    user, token = await auth_service.signup(
        body.model_dump(exclude_none=True), welcome_url=f"{_base_url(request)}/me"
    )
    return send_token(user, token, settings, status.HTTP_201_CREATED)


@router.post("/login", summary="Log in with email and password")
async def login(
    body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    user, token = await auth_service.login(body.email, body.password)
    return send_token(user, token, settings)


@router.get("/logout", summary="Clear the token cookie")
async def logout(settings: Settings = Depends(get_app_settings)) -> JSONResponse:
    response = JSONResponse(content={"status": "success"})
    clear_token_cookie(response, settings)
    return response


@router.post("/forgotPassword", summary="Email a password reset link")
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    reset_base = f"{_base_url(request)}{settings.api_prefix}/users/resetPassword"
    await auth_service.forgot_password(body.email, lambda token: f"{reset_base}/{token}")
    return JSONResponse(content={"status": "success", "message": "Token sent to email!"})


@router.patch("/resetPassword/{token}", summary="Set a new password with a reset token")
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    user, jwt_token = await auth_service.reset_password(token, body.password, body.passwordConfirm)
    return send_token(user, jwt_token, settings)


@router.get("/session", summary="Current user, if logged in")
async def session(user=Depends(is_logged_in)) -> JSONResponse:
    return JSONResponse(
        content={"status": "success", "data": {"user": user.public_dict() if user else None}}
    )


# ============================================================================
# SELF-SERVICE ENDPOINTS
# ============================================================================


@router.patch("/updateMyPassword", summary="Change the current user's password")
async def update_my_password(
    body: UpdatePasswordRequest,
    user: CurrentUser = Depends(protect),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    updated, token = await auth_service.update_password(
        user.id, body.passwordCurrent, body.password, body.passwordConfirm
    )
    return send_token(updated, token, settings)


@router.get("/me", summary="Current user's profile")
async def get_me(
    user: CurrentUser = Depends(protect),
    users: EntityRepository = Depends(get_users_repo),
) -> JSONResponse:
    return factory.send_success(await users.get(user.id))


@router.patch("/updateMe", summary="Update the current user's name or email")
async def update_me(
    body: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(protect),
    users: EntityRepository = Depends(get_users_repo),
) -> JSONResponse:
    if any(field in body for field in PASSWORD_FIELDS):
        raise OperationalError(
            "This route is not allowed for password updates. Please use /updateMyPassword route",
            status.HTTP_400_BAD_REQUEST,
        )

    changes = {k: v for k, v in body.items() if k in SELF_EDITABLE_FIELDS}
    updated = await users.update(user.id, changes)
    logger.info("profile_updated", user_id=user.id, fields=sorted(changes))
    return JSONResponse(content=factory.encode({"status": "success", "data": {"user": updated}}))


@router.delete("/deleteMe", status_code=status.HTTP_204_NO_CONTENT, summary="Deactivate the current user")
async def delete_me(
    user: CurrentUser = Depends(protect),
    users: EntityRepository = Depends(get_users_repo),
) -> Response:
    await users.set_fields(user.id, {"active": False})
    logger.info("user_deactivated", user_id=user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================


def active_users(request: Request) -> Dict[str, Any]:
    return {"active": True}


_admin = [Depends(require_admin)]

router.add_api_route(
    "", factory.get_all(get_users_repo, scope=active_users),
    methods=["GET"], name="get_all_users", dependencies=_admin,
)
router.add_api_route(
    "", factory.create_one(get_users_repo),
    methods=["POST"], name="create_user", dependencies=_admin,
)
router.add_api_route(
    "/{id}", factory.get_one(get_users_repo),
    methods=["GET"], name="get_user", dependencies=_admin,
)
router.add_api_route(
    "/{id}", factory.update_one(get_users_repo),
    methods=["PATCH"], name="update_user", dependencies=_admin,
)
router.add_api_route(
    "/{id}", factory.delete_one(get_users_repo),
    methods=["DELETE"], name="delete_user", status_code=204, dependencies=_admin,
)
