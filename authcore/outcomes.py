"""Typed results for expected authentication outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from authcore.models import IdentitySummary, OtpRecord, SingleUseToken


class RejectReason(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_BLOCKED = "account_blocked"
    INVALID_CODE = "invalid_code"
    CODE_EXPIRED = "code_expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    RATE_LIMITED = "rate_limited"
    TOKEN_INVALID = "token_invalid"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_USED = "token_used"
    EMAIL_NOT_VERIFIED = "email_not_verified"
    SESSION_INVALID = "session_invalid"


class LoginStatus(str, Enum):
    OK = "ok"
    SECOND_FACTOR_REQUIRED = "second_factor_required"
    REJECTED = "rejected"


@dataclass(frozen=True)
class LoginResult:
    status: LoginStatus
    identity: IdentitySummary | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    session_id: str | None = None
    reason: RejectReason | None = None

    @property
    def ok(self) -> bool:
        return self.status is LoginStatus.OK

    @classmethod
    def rejected(cls, reason: RejectReason) -> "LoginResult":
        return cls(status=LoginStatus.REJECTED, reason=reason)

    @classmethod
    def second_factor_required(cls) -> "LoginResult":
        return cls(status=LoginStatus.SECOND_FACTOR_REQUIRED)


@dataclass(frozen=True)
class RefreshResult:
    access_token: str | None = None
    refresh_token: str | None = None
    session_id: str | None = None
    reason: RejectReason | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


@dataclass(frozen=True)
class IssuedSession:
    session_id: str
    access_token: str
    refresh_token: str


class OtpStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class OtpOutcome:
    status: OtpStatus
    remaining_attempts: int | None = None
    record: OtpRecord | None = None

    @property
    def valid(self) -> bool:
        return self.status is OtpStatus.VALID

    def reject_reason(self) -> RejectReason:
        if self.status is OtpStatus.EXPIRED:
            return RejectReason.CODE_EXPIRED
        if self.status is OtpStatus.ATTEMPTS_EXHAUSTED:
            return RejectReason.ATTEMPTS_EXHAUSTED
        return RejectReason.INVALID_CODE


class OtpRequestStatus(str, Enum):
    SENT = "sent"
    RATE_LIMITED = "rate_limited"


class TokenStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"
    USED = "used"


_TOKEN_REJECTIONS = {
    TokenStatus.INVALID: RejectReason.TOKEN_INVALID,
    TokenStatus.EXPIRED: RejectReason.TOKEN_EXPIRED,
    TokenStatus.USED: RejectReason.TOKEN_USED,
}


@dataclass(frozen=True)
class TokenOutcome:
    status: TokenStatus
    record: SingleUseToken | None = None

    @property
    def valid(self) -> bool:
        return self.status is TokenStatus.VALID

    def reject_reason(self) -> RejectReason:
        return _TOKEN_REJECTIONS.get(self.status, RejectReason.TOKEN_INVALID)


class SecondFactorStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class ActionResult:
    """Shape for operations whose success carries no payload."""

    reason: RejectReason | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


@dataclass(frozen=True)
class SecondFactorSetup:
    secret: str
    provisioning_uri: str
    backup_codes: list[str]
