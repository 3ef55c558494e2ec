"""Entity shapes shared between the services and the store ports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class Channel(str, Enum):
    PASSWORD = "password"
    FEDERATED = "federated"
    ONE_TIME_CODE = "one_time_code"


class TokenPurpose(str, Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class OtpPurpose(str, Enum):
    LOGIN = "login"
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class ClientMeta:
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    password_digest: str = ""
    email_verified: bool = False
    federation_provider: str | None = None
    status: AccountStatus = AccountStatus.ACTIVE
    second_factor_enabled: bool = False
    given_name: str | None = None
    family_name: str | None = None
    # Redundant fast-path references to the outstanding single-use tokens.
    reset_token_digest: str | None = None
    verification_token_digest: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_blocked(self) -> bool:
        return self.status is not AccountStatus.ACTIVE

    @property
    def has_password(self) -> bool:
        return bool(self.password_digest)


@dataclass(frozen=True)
class IdentitySummary:
    id: str
    email: str
    email_verified: bool
    federation_provider: str | None
    second_factor_enabled: bool
    given_name: str | None = None
    family_name: str | None = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentitySummary":
        return cls(
            id=identity.id,
            email=identity.email,
            email_verified=identity.email_verified,
            federation_provider=identity.federation_provider,
            second_factor_enabled=identity.second_factor_enabled,
            given_name=identity.given_name,
            family_name=identity.family_name,
        )


@dataclass(frozen=True)
class Session:
    id: str
    identity_id: str
    refresh_digest: str
    created_at: datetime
    access_expires_at: datetime
    refresh_expires_at: datetime
    access_window_seconds: int
    client: ClientMeta = field(default_factory=ClientMeta)
    previous_refresh_digest: str | None = None
    last_refreshed_at: datetime | None = None


@dataclass(frozen=True)
class SingleUseToken:
    digest: str
    identity_id: str
    purpose: TokenPurpose
    issued_at: datetime
    expires_at: datetime
    consumed: bool = False
    consumed_at: datetime | None = None


@dataclass(frozen=True)
class OtpRecord:
    id: str
    email: str
    purpose: OtpPurpose
    code_digest: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0
    consumed: bool = False
    consumed_at: datetime | None = None


@dataclass(frozen=True)
class SecondFactorEnrolment:
    identity_id: str
    secret: str
    backup_code_digests: tuple[str, ...]
    enabled: bool
    created_at: datetime
    last_used_at: datetime | None = None
    last_used_step: int | None = None


@dataclass(frozen=True)
class FederatedProfile:
    email: str
    email_verified: bool
    provider: str
    subject: str | None = None
    given_name: str | None = None
    family_name: str | None = None


@dataclass(frozen=True)
class AuditEvent:
    action: str
    occurred_at: datetime
    actor_id: str | None = None
    actor_type: str = "system"
    target_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    client: ClientMeta = field(default_factory=ClientMeta)
