"""
Authentication models.

Provides Pydantic schemas for:
- Authentication requests (signup, login, password reset/update)
- JWT token payloads
- The authenticated principal attached to each request
- Roles
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Role Enum
# ============================================================================


class Role(str, Enum):
    """
    User roles.

    - ADMIN: Full access, user management
    - LEAD_GUIDE: Tour and booking management
    - GUIDE: Tour staff, read access to monthly plans
    - USER: Customers, may review and book tours
    """
    USER = "user"
    GUIDE = "guide"
    LEAD_GUIDE = "lead-guide"
    ADMIN = "admin"


# ============================================================================
# Pydantic Request Models
# ============================================================================


class SignupRequest(BaseModel):
    """
    Signup request schema.

    Field rules (length, email format, confirmation) are enforced by the user
    entity schema so that signup and admin user creation report the same
    validation errors.
    """
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    passwordConfirm: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Jonas Schmedtmann",
                "email": "jonas@example.com",
                "password": "pass1234",
                "passwordConfirm": "pass1234"
            }
        }
    }


class LoginRequest(BaseModel):
    """Login request schema. Missing fields are reported by the service."""
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None
    passwordConfirm: Optional[str] = None


class UpdatePasswordRequest(BaseModel):
    passwordCurrent: Optional[str] = None
    password: Optional[str] = None
    passwordConfirm: Optional[str] = None


# ============================================================================
# Token Models
# ============================================================================


class TokenPayload(BaseModel):
    """
    JWT token claims.

    ``id`` binds the user, ``iat``/``exp`` are Unix epoch seconds.
    """
    id: str = Field(..., description="User ID")
    iat: int = Field(..., description="Issued at timestamp (Unix epoch)")
    exp: int = Field(..., description="Expiration timestamp (Unix epoch)")


# ============================================================================
# Principal
# ============================================================================


class CurrentUser(BaseModel):
    """
    Authenticated user attached to ``request.state.user``.

    Built from the stored user document with secrets stripped.
    """
    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    role: Role = Field(default=Role.USER, description="User role")
    photo: Optional[str] = None

    model_config = ConfigDict(use_enum_values=False)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CurrentUser":
        return cls(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            email=doc.get("email", ""),
            role=doc.get("role") or Role.USER.value,
            photo=doc.get("photo"),
        )

    def has_any_role(self, roles: List[Role]) -> bool:
        """
        Check if user has any of the specified roles.

        Args:
            roles: List of roles to check

        Returns:
            True if the user's role is in the list
        """
        return self.role in roles

    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def public_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "photo": self.photo,
        }
