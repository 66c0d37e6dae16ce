"""
FastAPI application configuration using Pydantic Settings.

Provides centralized configuration for:
- Runtime environment (development / production error verbosity)
- Document store connection (MongoDB URI with password substitution)
- Authentication (JWT signing, token and cookie expiry, password reset window)
- Payment provider and email delivery collaborators
- API settings (CORS, rate limiting)
- Logging

All settings support environment variable overrides and .env file loading.
"""

from datetime import timedelta
from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _one_of(name: str, value: str, allowed: Tuple[str, ...]) -> str:
    if value not in allowed:
        raise ValueError(f"{name} must be one of {list(allowed)}, got: {value}")
    return value


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the
    prefix "TOURS_API_" (e.g., TOURS_API_DATABASE_URL).

    Environment variables are loaded from:
    1. System environment
    2. .env file in the current directory
    3. Default values defined below
    """

    # =========================================================================
    # API Settings
    # =========================================================================

    app_name: str = Field(
        default="Tour Booking API",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="API version"
    )
    api_prefix: str = Field(
        default="/api/v1",
        description="API URL prefix"
    )
    environment: str = Field(
        default="production",
        description="Environment: development|staging|production"
    )
    host: str = Field(
        default="0.0.0.0",
        description="API bind host"
    )
    port: int = Field(
        default=3000,
        description="API bind port",
        gt=0,
        lt=65536
    )

    # =========================================================================
    # Document Store Settings
    # =========================================================================

    store_backend: str = Field(
        default="mongodb",
        description="Document store backend: mongodb|memory"
    )
    database_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string; '<PASSWORD>' is replaced by database_password"
    )
    database_password: Optional[str] = Field(
        default=None,
        description="Password substituted into database_url"
    )
    database_name: str = Field(
        default="natours",
        description="MongoDB database name"
    )
    database_timeout_ms: int = Field(
        default=5000,
        description="Server selection timeout (milliseconds)",
        gt=0
    )

    # =========================================================================
    # JWT Authentication Settings
    # =========================================================================

    jwt_secret_key: str = Field(
        default="change-this-secret-key-in-production-use-env-var-minimum-32-chars",
        description="Secret key for JWT token signing (MUST be changed in production)",
        min_length=32
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    jwt_expires_in: timedelta = Field(
        default=timedelta(days=90),
        description="Token lifetime (ISO 8601 duration or seconds)"
    )
    jwt_cookie_expires_in_days: int = Field(
        default=90,
        description="Lifetime of the jwt cookie in days",
        gt=0
    )
    jwt_cookie_name: str = Field(
        default="jwt",
        description="Cookie carrying the token"
    )

    # =========================================================================
    # Password Settings
    # =========================================================================

    password_bcrypt_rounds: int = Field(
        default=12,
        description="BCrypt hash rounds (higher = slower but more secure)",
        ge=4,
        le=14
    )
    password_reset_expires_minutes: int = Field(
        default=10,
        description="Validity window of a password reset token",
        gt=0
    )

    # =========================================================================
    # Payment Provider Settings
    # =========================================================================

    stripe_secret_key: Optional[str] = Field(
        default=None,
        description="Stripe secret API key"
    )
    checkout_currency: str = Field(
        default="usd",
        description="Currency for checkout line items"
    )

    # =========================================================================
    # Email Settings
    # =========================================================================

    email_backend: str = Field(
        default="log",
        description="Email backend: smtp|log"
    )
    email_from: str = Field(
        default="Natours <hello@natours.io>",
        description="Sender address"
    )
    email_host: str = Field(
        default="localhost",
        description="SMTP host"
    )
    email_port: int = Field(
        default=587,
        description="SMTP port"
    )
    email_username: Optional[str] = Field(
        default=None,
        description="SMTP username"
    )
    email_password: Optional[str] = Field(
        default=None,
        description="SMTP password"
    )
    email_use_tls: bool = Field(
        default=True,
        description="Use STARTTLS"
    )

    # =========================================================================
    # CORS Settings
    # =========================================================================

    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # =========================================================================
    # Rate Limiting Settings
    # =========================================================================

    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable rate limiting on API routes"
    )
    rate_limit_default: str = Field(
        default="100/hour",
        description="Default limit per client IP"
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="json",
        description="Log format: json|text"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return _one_of("log_level", v.upper(), ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"))

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Only development switches error payloads to verbose mode."""
        return _one_of("environment", v.lower(), ("development", "staging", "production"))

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        return _one_of("store_backend", v.lower(), ("mongodb", "memory"))

    @field_validator("email_backend")
    @classmethod
    def validate_email_backend(cls, v: str) -> str:
        return _one_of("email_backend", v.lower(), ("smtp", "log"))

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        # Tokens are signed with the shared secret, so only HMAC variants apply.
        return _one_of("jwt_algorithm", v, ("HS256", "HS384", "HS512"))

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        return _one_of("log_format", v.lower(), ("json", "text"))

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def mongodb_uri(self) -> str:
        """Connection string with the '<PASSWORD>' placeholder substituted."""
        if self.database_password is None:
            return self.database_url
        return self.database_url.replace("<PASSWORD>", self.database_password)

    @property
    def jwt_cookie_max_age(self) -> int:
        """Cookie lifetime in seconds."""
        return self.jwt_cookie_expires_in_days * 24 * 60 * 60

    # =========================================================================
    # Model Config
    # =========================================================================

    model_config = SettingsConfigDict(
        env_prefix="TOURS_API_",  # Environment variable prefix
        env_file=".env",          # Load from .env file
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",           # Ignore extra environment variables
        validate_default=True,    # Validate default values
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded from:
    1. Environment variables with TOURS_API_ prefix
    2. .env file in the current directory
    3. Default values

    Returns:
        Settings: Cached settings instance
    """
    return Settings()
