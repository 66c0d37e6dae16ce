"""
Authentication service for user authentication and JWT token management.

Provides:
- Password hashing and verification (passlib + bcrypt)
- JWT token creation and validation
- Principal resolution for the protect / is-logged-in chains
- Signup, login, password reset and password update flows
"""

import asyncio
import hashlib
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from api.src.config import Settings
from api.src.exceptions import (
    AppError,
    CastError,
    NotFoundError,
    OperationalError,
    TokenExpiredError,
    TokenInvalidError,
    UnauthorizedError,
)
from api.src.models.auth import CurrentUser, TokenPayload
from api.src.models.entities import USER_SCHEMA
from api.src.models.schema import EntitySchema
from api.src.repositories.entity_repo import EntityRepository
from api.src.services.notifier import Notifier

logger = structlog.get_logger(__name__)

INCORRECT_CREDENTIALS = "Incorect email or password"
EMAIL_SEND_FAILED = "There was an error sending the email. Try again later!"

_PASSWORD_SCHEMA = EntitySchema(
    name=USER_SCHEMA.name,
    collection=USER_SCHEMA.collection,
    fields={k: USER_SCHEMA.fields[k] for k in ("password", "passwordConfirm")},
)


def hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AuthService:
    """Service for authentication and credential token operations."""

    def __init__(self, users: EntityRepository, settings: Settings, notifier: Notifier):
        """
        Initialize auth service.

        Args:
            users: Repository over the users collection
            settings: Application settings
            notifier: Email collaborator for welcome and reset messages
        """
        self.users = users
        self.settings = settings
        self.notifier = notifier

        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.password_bcrypt_rounds
        )

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt, off the event loop."""
        return await asyncio.to_thread(self.pwd_context.hash, password)

    async def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns:
            True if password matches, False otherwise (including malformed hashes)
        """
        try:
            return await asyncio.to_thread(self.pwd_context.verify, plain_password, hashed_password)
        except (ValueError, TypeError) as e:
            logger.warning("password_verify_failed", error=str(e))
            return False

    async def hash_password_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """``before_save`` hook for the users repository."""
        if data.get("password"):
            data = dict(data)
            data["password"] = await self.hash_password(data["password"])
        return data

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def sign_token(self, user_id: str, expires_in: Optional[timedelta] = None) -> str:
        """
        Create a signed JWT bound to ``user_id``.

        Args:
            user_id: User ID
            expires_in: Custom lifetime (defaults to settings.jwt_expires_in)

        Returns:
            JWT token string
        """
        if expires_in is None:
            expires_in = self.settings.jwt_expires_in

        issued_at = int(time.time())
        payload = {
            "id": str(user_id),
            "iat": issued_at,
            "exp": issued_at + int(expires_in.total_seconds()),
        }
        token = jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)
        logger.info("access_token_created", user_id=str(user_id), expires_in=expires_in.total_seconds())
        return token

    def decode_token(self, token: str) -> TokenPayload:
        """
        Verify signature and expiry.

        Raises:
            TokenExpiredError: Signature is valid but the token expired
            TokenInvalidError: Anything else wrong with the token
        """
        try:
            claims = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm]
            )
        except ExpiredSignatureError:
            logger.info("token_expired")
            raise TokenExpiredError()
        except JWTError as e:
            logger.warning("token_decode_failed", error=str(e))
            raise TokenInvalidError()

        try:
            return TokenPayload(**claims)
        except (TypeError, ValueError):
            logger.warning("token_claims_invalid", claims=sorted(claims))
            raise TokenInvalidError()

    @staticmethod
    def changed_password_after(user: Mapping[str, Any], issued_at: int) -> bool:
        """True if the user's password changed after the token was issued."""
        changed_at = user.get("passwordChangedAt")
        if not changed_at:
            return False
        return int(_as_utc(changed_at).timestamp()) > issued_at

    async def resolve_principal(self, token: str) -> CurrentUser:
        """
        Run the token through the full verification chain.

        TokenPresent -> TokenValid -> PrincipalLoaded -> Authorized.

        Raises:
            TokenInvalidError / TokenExpiredError: Bad signature or expired
            UnauthorizedError: User gone, deactivated, or password changed
        """
        payload = self.decode_token(token)

        try:
            user = await self.users.find_raw_by_id(payload.id)
        except CastError:
            user = None

        if not user or user.get("active") is False:
            logger.warning("principal_not_found", user_id=payload.id)
            raise UnauthorizedError("The user belonging to this token does no longer exist.")

        if self.changed_password_after(user, payload.iat):
            logger.warning("principal_password_changed", user_id=payload.id)
            raise UnauthorizedError("User recently changed password! Please log in again.")

        return CurrentUser.from_document(user)

    async def try_resolve_principal(self, token: Optional[str]) -> Optional[CurrentUser]:
        """Passive variant: any failure yields no principal."""
        if not token:
            return None
        try:
            return await self.resolve_principal(token)
        except AppError as e:
            logger.debug("optional_auth_failed", error=e.message)
            return None

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def signup(self, body: Mapping[str, Any], welcome_url: str) -> Tuple[Dict[str, Any], str]:
        """
        Create a user account and log it in.

        Only name, email and password fields are taken from the body; roles
        are assigned by administrators.
        """
        allowed = {k: body[k] for k in ("name", "email", "password", "passwordConfirm") if k in body}
        user = await self.users.create(allowed)
        logger.info("user_signed_up", user_id=user["id"])

        try:
            await self.notifier.send_welcome(user, welcome_url)
        except Exception as e:
            logger.error("welcome_email_failed", user_id=user["id"], error=str(e))
            raise OperationalError(EMAIL_SEND_FAILED, 500)

        return user, self.sign_token(user["id"])

    async def login(self, email: Optional[str], password: Optional[str]) -> Tuple[Dict[str, Any], str]:
        if not email or not password:
            raise OperationalError("Please provide email and password", 400)

        user = await self.users.find_one_raw(email=email.strip().lower())
        if (
            not user
            or user.get("active") is False
            or not await self.verify_password(password, user.get("password", ""))
        ):
            logger.warning("authentication_failed", email=email)
            raise UnauthorizedError(INCORRECT_CREDENTIALS)

        logger.info("login_success", user_id=str(user["_id"]))
        public = self.users.public(user)
        return public, self.sign_token(public["id"])

    async def forgot_password(self, email: Optional[str], reset_url: Callable[[str], str]) -> None:
        """
        Issue a single-use reset token and deliver it out-of-band.

        The hashed token and its expiry are stored on the user. If delivery
        fails they are removed again before the error is raised.
        """
        user = await self.users.find_one_raw(email=(email or "").strip().lower())
        if not user:
            raise NotFoundError("There is no user with email address.")

        raw_token = secrets.token_hex(32)
        expires = datetime.now(timezone.utc) + timedelta(minutes=self.settings.password_reset_expires_minutes)
        await self.users.set_fields(
            user["_id"],
            {"passwordResetToken": hash_reset_token(raw_token), "passwordResetExpires": expires},
        )

        try:
            await self.notifier.send_password_reset(self.users.public(user), reset_url(raw_token))
        except Exception as e:
            logger.error("password_reset_email_failed", user_id=str(user["_id"]), error=str(e))
            await self.users.set_fields(
                user["_id"], {}, unset=("passwordResetToken", "passwordResetExpires")
            )
            raise OperationalError(EMAIL_SEND_FAILED, 500)

        logger.info("password_reset_token_sent", user_id=str(user["_id"]))

    async def reset_password(
        self, raw_token: str, password: Optional[str], password_confirm: Optional[str]
    ) -> Tuple[Dict[str, Any], str]:
        user = await self.users.find_one_raw(passwordResetToken=hash_reset_token(raw_token))
        expires = user.get("passwordResetExpires") if user else None
        if not user or not expires or _as_utc(expires) <= datetime.now(timezone.utc):
            logger.warning("password_reset_token_rejected")
            raise OperationalError("Token is invalid or has expired", 400)

        updated = await self._store_new_password(
            user["_id"], password, password_confirm,
            unset=("passwordResetToken", "passwordResetExpires"),
        )
        logger.info("password_reset_completed", user_id=str(user["_id"]))
        public = self.users.public(updated)
        return public, self.sign_token(public["id"])

    async def update_password(
        self,
        user_id: str,
        current_password: Optional[str],
        password: Optional[str],
        password_confirm: Optional[str],
    ) -> Tuple[Dict[str, Any], str]:
        user = await self.users.find_raw_by_id(user_id)
        if not user:
            raise UnauthorizedError("The user belonging to this token does no longer exist.")

        if not current_password or not await self.verify_password(current_password, user.get("password", "")):
            raise UnauthorizedError("Your current password is wrong.")

        updated = await self._store_new_password(user["_id"], password, password_confirm)
        logger.info("password_updated", user_id=user_id)
        public = self.users.public(updated)
        return public, self.sign_token(public["id"])

    async def _store_new_password(self, user_id, password, password_confirm, unset=()) -> Dict[str, Any]:
        data = _PASSWORD_SCHEMA.validate({"password": password, "passwordConfirm": password_confirm})
        # Backdated so tokens issued in the same second stay valid.
        changed_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        return await self.users.set_fields(
            user_id,
            {"password": await self.hash_password(data["password"]), "passwordChangedAt": changed_at},
            unset=unset,
        )
