"""Shared fakes for the auth tests."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from authcore.config import AuthSettings, load_settings
from authcore.dependencies import build_components
from authcore.exceptions import DeliveryError, InvalidAssertion
from authcore.models import FederatedProfile, OtpPurpose
from authcore.services.audit_service import AuditTrail
from authcore.stores.memory_store import (
    MemoryAuditSink,
    MemoryIdentityStore,
    MemoryOtpStore,
    MemorySecondFactorStore,
    MemorySessionStore,
    MemoryTokenStore,
)


def make_settings(**overrides) -> AuthSettings:
    values = {
        "JWT_SECRET": "test-secret",
        "TOKEN_PEPPER": "test-pepper",
        "ARGON2_TIME_COST": 1,
        "ARGON2_MEMORY_COST": 8,
        "ARGON2_PARALLELISM": 1,
        "FIXED_OTP": "",
        "LOGIN_RATE_LIMIT_PER_MINUTE": 100,
        "RESEND_API_KEY": "re_test",
        "EMAIL_FROM_ADDRESS": "noreply@example.com",
        "FRONTEND_URL": "https://app.example.com",
    }
    values.update(overrides)
    return load_settings(**values)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class CapturingMailer:
    def __init__(self) -> None:
        self.codes: list[tuple[str, str, OtpPurpose]] = []
        self.reset_tokens: list[tuple[str, str]] = []
        self.verification_tokens: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose, expires_in_minutes: int) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.codes.append((email, code, purpose))

    async def send_password_reset(self, email: str, token: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.reset_tokens.append((email, token))

    async def send_email_verification(self, email: str, token: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.verification_tokens.append((email, token))

    def last_code(self) -> str:
        return self.codes[-1][1]

    def last_reset_token(self) -> str:
        return self.reset_tokens[-1][1]

    def last_verification_token(self) -> str:
        return self.verification_tokens[-1][1]

    def break_delivery(self) -> None:
        self.fail_with = DeliveryError("smtp down")


class FakeFederatedVerifier:
    def __init__(self) -> None:
        self.profiles: dict[str, FederatedProfile] = {}

    def add(self, assertion: str, email: str, verified: bool = True, **names) -> None:
        self.profiles[assertion] = FederatedProfile(
            email=email, email_verified=verified, provider="google", subject=assertion, **names
        )

    async def verify(self, assertion: str) -> FederatedProfile:
        try:
            return self.profiles[assertion]
        except KeyError:
            raise InvalidAssertion() from None


class FailingAuditSink:
    def __init__(self) -> None:
        self.calls = 0

    async def write(self, event) -> None:
        self.calls += 1
        raise RuntimeError("audit sink unavailable")


class AuthTestCase(unittest.IsolatedAsyncioTestCase):
    """Wires a full auth core over in-memory stores, a fake clock and fakes for delivery."""

    settings_overrides: dict = {}

    def make_audit_sink(self):
        return MemoryAuditSink()

    async def asyncSetUp(self) -> None:
        self.clock = FakeClock()
        self.mailer = CapturingMailer()
        self.federated = FakeFederatedVerifier()
        self.audit = self.make_audit_sink()
        self.identity_store = MemoryIdentityStore()
        self.session_store = MemorySessionStore()
        self.token_store = MemoryTokenStore()
        self.otp_store = MemoryOtpStore()
        self.second_factor_store = MemorySecondFactorStore()
        self.settings = make_settings(**self.settings_overrides)
        self.components = build_components(
            self.settings,
            identity_store=self.identity_store,
            session_store=self.session_store,
            token_store=self.token_store,
            otp_store=self.otp_store,
            second_factor_store=self.second_factor_store,
            mailer=self.mailer,
            federated_verifier=self.federated,
            audit_sink=self.audit,
            clock=self.clock,
        )
        self.auth = self.components.auth
        self.trail = AuditTrail(clock=self.clock)

    async def audited_actions(self) -> list[str]:
        await self.auth.drain()
        return self.audit.actions()

    async def sessions_for(self, identity_id: str) -> int:
        return len(await self.session_store.list_for_identity(identity_id))
