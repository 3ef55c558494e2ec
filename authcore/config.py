"""Auth configuration management."""

from __future__ import annotations

import secrets
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthSettings(BaseSettings):
    """Configuration values for auth flows.

    Resolved once at startup via :func:`load_settings` and handed to each
    component constructor.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    ENVIRONMENT: Literal["dev", "prod"] = Field(default="dev", description="Application environment")

    JWT_SECRET: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Secret key for access-token signing",
    )
    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    SESSION_WINDOW_MINUTES: int = Field(default=7 * 24 * 60, description="Default access-token window")
    REMEMBER_ME_WINDOW_MINUTES: int = Field(default=30 * 24 * 60, description="Access-token window with remember-me")
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=30, description="Refresh token lifetime in days")
    ROTATE_REFRESH_TOKENS: bool = Field(default=True, description="Issue a new refresh token on every refresh")

    TOKEN_PEPPER: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Server-side pepper mixed into token and code digests",
    )

    OTP_LENGTH: int = Field(default=6, description="Number of digits in a one-time code")
    OTP_EXPIRY_MINUTES: int = Field(default=10, description="OTP expiration time in minutes")
    MAX_OTP_ATTEMPTS: int = Field(default=5, description="Maximum OTP verification attempts")
    OTP_REQUEST_COOLDOWN_SECONDS: int = Field(default=60, description="Minimum delay between OTP requests")
    OTP_RETENTION_HOURS: int = Field(default=24, description="Retention of consumed OTP records")
    FIXED_OTP: str | None = Field(default="", description="Fixed OTP for testing (leave empty in production)")

    PASSWORD_RESET_EXPIRY_MINUTES: int = Field(default=60, description="Password reset link validity")
    EMAIL_VERIFICATION_EXPIRY_MINUTES: int = Field(default=24 * 60, description="Email verification link validity")
    TOKEN_ISSUE_MAX_RETRIES: int = Field(default=10, description="Retries on single-use token digest collision")

    PASSWORD_POLICY_ENABLED: bool = Field(default=False, description="Enforce the full password policy")
    PASSWORD_MIN_LENGTH: int = Field(default=8, description="Minimum password length")
    PASSWORD_REQUIRE_UPPERCASE: bool = Field(default=False)
    PASSWORD_REQUIRE_LOWERCASE: bool = Field(default=False)
    PASSWORD_REQUIRE_NUMBER: bool = Field(default=False)
    PASSWORD_REQUIRE_SPECIAL: bool = Field(default=False)

    ARGON2_TIME_COST: int = Field(default=3, description="Argon2id iterations")
    ARGON2_MEMORY_COST: int = Field(default=65536, description="Argon2id memory in KiB")
    ARGON2_PARALLELISM: int = Field(default=4, description="Argon2id lanes")

    TOTP_ISSUER: str = Field(default="Handmade Harmony", description="Issuer shown in authenticator apps")
    TOTP_VALID_WINDOW: int = Field(default=1, description="Accepted clock skew in TOTP steps")
    BACKUP_CODES_COUNT: int = Field(default=10, description="Backup codes generated per enrolment")

    LOGIN_RATE_LIMIT_PER_MINUTE: int = Field(default=5, description="Password attempts per IP and email per minute")
    REVOKE_SESSIONS_ON_PASSWORD_RESET: bool = Field(default=True)
    CLEANUP_INTERVAL_SECONDS: int = Field(default=300, description="Background sweep interval")

    EMAIL_PROVIDER: Literal["resend", "none"] = Field(default="resend", description="Email provider")
    EMAIL_FROM_NAME: str = Field(default="Handmade Harmony", description="From name displayed in emails")
    EMAIL_FROM_ADDRESS: str = Field(default="", description="Sender email address")
    RESEND_API_KEY: str | None = Field(default=None, description="Resend API key")
    FRONTEND_URL: str = Field(default="http://localhost:3000", description="Base URL for links in emails")

    GOOGLE_CLIENT_ID: str | None = Field(default=None, description="Google OAuth Client ID")
    GOOGLE_CLIENT_SECRET: str | None = Field(default=None, description="Google OAuth Client Secret")
    GOOGLE_REDIRECT_URI: str | None = Field(default=None, description="Google OAuth Redirect URI")

    def session_window_minutes(self, remember_me: bool) -> int:
        if remember_me:
            return self.REMEMBER_ME_WINDOW_MINUTES
        return self.SESSION_WINDOW_MINUTES


def load_settings(**overrides) -> AuthSettings:
    """Resolve settings from the environment, with explicit overrides taking priority."""
    return AuthSettings(**overrides)
