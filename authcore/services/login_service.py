"""Login orchestration across the password, federated and one-time-code channels.

Every attempt moves through the same states::

    AWAITING_PRIMARY_CREDENTIAL -> PRIMARY_VERIFIED
        -> AWAITING_SECOND_FACTOR (only when enrolled)
        -> AUTHENTICATED -> SESSION_ISSUED

A failure at any point ends the attempt without persisting anything, and no
session exists until the final transition.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Awaitable, Callable

from authcore.config import AuthSettings
from authcore.exceptions import InvalidAssertion
from authcore.interfaces.federated_verifier import FederatedVerifier
from authcore.interfaces.rate_limiter import RateLimiter
from authcore.models import Channel, Identity, IdentitySummary, OtpPurpose
from authcore.outcomes import LoginResult, LoginStatus, RejectReason, SecondFactorStatus
from authcore.security import SecretHasher, normalize_email
from authcore.services.audit_service import AuditTrail
from authcore.services.identity_service import ChannelProfile, Found, IdentityService, NotFound
from authcore.services.otp_service import OtpService
from authcore.services.second_factor_service import SecondFactorService
from authcore.services.session_service import SessionService

logger = logging.getLogger(__name__)

Finalizer = Callable[[], Awaitable[bool]]


class LoginState(str, Enum):
    AWAITING_PRIMARY_CREDENTIAL = "awaiting_primary_credential"
    PRIMARY_VERIFIED = "primary_verified"
    AWAITING_SECOND_FACTOR = "awaiting_second_factor"
    AUTHENTICATED = "authenticated"
    SESSION_ISSUED = "session_issued"


@dataclass
class LoginAttempt:
    channel: Channel
    trail: AuditTrail
    second_factor_code: str | None = None
    remember_me: bool = False
    state: LoginState = LoginState.AWAITING_PRIMARY_CREDENTIAL
    identity: Identity | None = None

    def advance(self, state: LoginState) -> None:
        logger.debug("Login via %s: %s -> %s", self.channel.value, self.state.value, state.value)
        self.state = state

    def reject(self, reason: RejectReason, audit_reason: str, **metadata) -> LoginResult:
        self.trail.login_failed(audit_reason, identity=self.identity, channel=self.channel.value, **metadata)
        self.state = LoginState.AWAITING_PRIMARY_CREDENTIAL
        return LoginResult.rejected(reason)


class LoginService:
    def __init__(
        self,
        identities: IdentityService,
        hasher: SecretHasher,
        otp: OtpService,
        second_factor: SecondFactorService,
        sessions: SessionService,
        federated_verifier: FederatedVerifier,
        rate_limiter: RateLimiter,
        settings: AuthSettings,
    ) -> None:
        self._identities = identities
        self._hasher = hasher
        self._otp = otp
        self._second_factor = second_factor
        self._sessions = sessions
        self._federated = federated_verifier
        self._limiter = rate_limiter
        self._settings = settings

    async def login_with_password(self, email: str, password: str, attempt: LoginAttempt) -> LoginResult:
        email = normalize_email(email)
        client_ip = attempt.trail.client.ip_address or "unknown"
        if not await self._limiter.allow(
            f"login:{client_ip}:{email}", self._settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60
        ):
            return attempt.reject(RejectReason.RATE_LIMITED, "rate_limited", email=email)

        resolution = await self._identities.resolve(email)
        if isinstance(resolution, NotFound):
            # Same cost as a real comparison, so absence is not visible in timing.
            self._hasher.burn(password)
            return attempt.reject(RejectReason.INVALID_CREDENTIALS, "user_not_found", email=email)

        attempt.identity = identity = resolution.identity
        if identity.is_blocked:
            return attempt.reject(RejectReason.ACCOUNT_BLOCKED, "account_blocked", email=email)

        if not self._hasher.verify(password, identity.password_digest):
            return attempt.reject(RejectReason.INVALID_CREDENTIALS, "invalid_password", email=email)

        if self._hasher.needs_rehash(identity.password_digest):
            identity = await self._identities.update(identity.id, {"password_digest": self._hasher.hash(password)})
            logger.info("Upgraded password digest for identity %s", identity.id)

        return await self._primary_verified(attempt, identity)

    async def login_with_federated(self, assertion: str, attempt: LoginAttempt) -> LoginResult:
        try:
            profile = await self._federated.verify(assertion)
        except InvalidAssertion:
            return attempt.reject(RejectReason.INVALID_CREDENTIALS, "invalid_assertion")

        if not profile.email_verified:
            return attempt.reject(
                RejectReason.EMAIL_NOT_VERIFIED,
                "email_not_verified",
                email=normalize_email(profile.email),
                provider=profile.provider,
            )

        identity, created = await self._identities.create_from_channel(
            Channel.FEDERATED, ChannelProfile.from_federated(profile)
        )
        if created:
            attempt.trail.record("user.create_from_channel", actor=identity, target=identity, channel="federated")
        attempt.identity = identity
        if identity.is_blocked:
            return attempt.reject(RejectReason.ACCOUNT_BLOCKED, "account_blocked", provider=profile.provider)
        return await self._primary_verified(attempt, identity)

    async def login_with_code(
        self,
        email: str,
        code: str,
        attempt: LoginAttempt,
        purpose: OtpPurpose = OtpPurpose.LOGIN,
    ) -> LoginResult:
        email = normalize_email(email)
        resolution = await self._identities.resolve(email)
        # With a second factor outstanding the code must survive a failed or abandoned prompt.
        defer_consumption = isinstance(resolution, Found) and resolution.identity.second_factor_enabled
        if isinstance(resolution, Found):
            attempt.identity = resolution.identity

        outcome = await self._otp.verify_code(email, code, purpose, mark_consumed=not defer_consumption)
        if not outcome.valid:
            reason = outcome.reject_reason()
            return attempt.reject(reason, reason.value, email=email, remaining_attempts=outcome.remaining_attempts)

        if isinstance(resolution, Found) and resolution.identity.is_blocked:
            return attempt.reject(RejectReason.ACCOUNT_BLOCKED, "account_blocked", email=email)

        profile = ChannelProfile(email=email, email_verified=True)
        if isinstance(resolution, Found):
            identity = await self._identities.link_channel(resolution.identity, Channel.ONE_TIME_CODE, profile)
        else:
            identity, created = await self._identities.create_from_channel(Channel.ONE_TIME_CODE, profile)
            if created:
                attempt.trail.record(
                    "user.create_from_channel", actor=identity, target=identity, channel="one_time_code"
                )
        attempt.identity = identity
        if identity.is_blocked:
            return attempt.reject(RejectReason.ACCOUNT_BLOCKED, "account_blocked", email=email)

        finalize = None
        if defer_consumption and outcome.record is not None:
            finalize = functools.partial(self._otp.consume, outcome.record)
        return await self._primary_verified(attempt, identity, finalize)

    async def _primary_verified(
        self,
        attempt: LoginAttempt,
        identity: Identity,
        finalize: Finalizer | None = None,
    ) -> LoginResult:
        attempt.identity = identity
        attempt.advance(LoginState.PRIMARY_VERIFIED)

        if identity.second_factor_enabled:
            attempt.advance(LoginState.AWAITING_SECOND_FACTOR)
            if not attempt.second_factor_code:
                attempt.trail.record(
                    "auth.login.second_factor_required",
                    actor=identity,
                    target=identity,
                    channel=attempt.channel.value,
                )
                return LoginResult.second_factor_required()
            status = await self._second_factor.verify(identity.id, attempt.second_factor_code)
            if status is not SecondFactorStatus.VALID:
                return attempt.reject(RejectReason.INVALID_CODE, "invalid_second_factor")

        if finalize is not None and not await finalize():
            return attempt.reject(RejectReason.INVALID_CODE, "invalid_code")

        attempt.advance(LoginState.AUTHENTICATED)
        return await self._issue_session(attempt, identity)

    async def _issue_session(self, attempt: LoginAttempt, identity: Identity) -> LoginResult:
        window = timedelta(minutes=self._settings.session_window_minutes(attempt.remember_me))
        issued = await self._sessions.create_session(identity.id, window, attempt.trail.client)
        attempt.advance(LoginState.SESSION_ISSUED)
        attempt.trail.record(
            "auth.login.success",
            actor=identity,
            target=identity,
            channel=attempt.channel.value,
            session_id=issued.session_id,
            remember_me=attempt.remember_me,
        )
        return LoginResult(
            status=LoginStatus.OK,
            identity=IdentitySummary.from_identity(identity),
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            session_id=issued.session_id,
        )
