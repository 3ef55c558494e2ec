"""Core auth service.

The caller-facing surface: one coroutine per external operation. Each
operation validates its input, runs the components, and flushes the audit
events it collected exactly once on the way out.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping

from authcore.config import AuthSettings
from authcore.exceptions import DeliveryError, InfrastructureError, ValidationFailed
from authcore.interfaces.mailer import Mailer
from authcore.models import (
    Channel,
    ClientMeta,
    Identity,
    IdentitySummary,
    OtpPurpose,
    Session,
    SingleUseToken,
    TokenPurpose,
)
from authcore.outcomes import (
    ActionResult,
    LoginResult,
    OtpRequestStatus,
    RefreshResult,
    RejectReason,
    SecondFactorSetup,
    SecondFactorStatus,
)
from authcore.password_policy import PasswordPolicy
from authcore.schemas import (
    FederatedLoginRequest,
    LoginRequest,
    OtpRequest,
    OtpVerifyRequest,
    PasswordResetComplete,
    PasswordResetRequest,
    RegisterRequest,
    TokenRequest,
    parse,
)
from authcore.security import Clock, SecretHasher, utc_now
from authcore.services.audit_service import AuditEmitter, AuditTrail
from authcore.services.identity_service import ChannelProfile, Found, IdentityService
from authcore.services.login_service import LoginAttempt, LoginService
from authcore.services.otp_service import OtpService
from authcore.services.second_factor_service import SecondFactorService
from authcore.services.session_service import SessionService
from authcore.services.token_service import TokenService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        identities: IdentityService,
        hasher: SecretHasher,
        login: LoginService,
        sessions: SessionService,
        otp: OtpService,
        tokens: TokenService,
        second_factor: SecondFactorService,
        mailer: Mailer,
        audit: AuditEmitter,
        settings: AuthSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._identities = identities
        self._hasher = hasher
        self._login = login
        self._sessions = sessions
        self._otp = otp
        self._tokens = tokens
        self._second_factor = second_factor
        self._mailer = mailer
        self._audit = audit
        self._settings = settings
        self._policy = PasswordPolicy.from_settings(settings)
        self._clock = clock

    @asynccontextmanager
    async def _operation(self, name: str, client: ClientMeta | None) -> AsyncIterator[AuditTrail]:
        trail = AuditTrail(client, clock=self._clock)
        try:
            yield trail
        except InfrastructureError:
            logger.exception("Infrastructure failure during %s", name)
            raise
        finally:
            self._audit.flush(trail)

    # Registration and login

    async def register(
        self,
        email: str,
        password: str,
        given_name: str | None = None,
        family_name: str | None = None,
        client: ClientMeta | None = None,
    ) -> IdentitySummary:
        request = parse(RegisterRequest, email=email, password=password, given_name=given_name, family_name=family_name)
        self._policy.enforce(request.password)
        async with self._operation("register", client) as trail:
            identity, created = await self._identities.create_from_channel(
                Channel.PASSWORD,
                ChannelProfile(
                    email=request.email,
                    password_digest=self._hasher.hash(request.password),
                    given_name=request.given_name,
                    family_name=request.family_name,
                ),
            )
            if not created:
                raise ValidationFailed.for_field("email", "User with this email already exists")
            trail.record("user.register", actor=identity, target=identity, email=identity.email)
            return IdentitySummary.from_identity(identity)

    async def login(
        self,
        channel: Channel,
        credentials: Mapping[str, str],
        second_factor_code: str | None = None,
        remember_me: bool = False,
        client: ClientMeta | None = None,
    ) -> LoginResult:
        """Dispatch a login attempt to its channel.

        ``credentials`` holds ``email``/``password`` for the password channel,
        ``assertion`` for the federated channel and ``email``/``code`` (and
        optionally ``purpose``) for the one-time-code channel.
        """
        if channel is Channel.PASSWORD:
            return await self.login_with_password(
                credentials.get("email", ""),
                credentials.get("password", ""),
                second_factor_code=second_factor_code,
                remember_me=remember_me,
                client=client,
            )
        if channel is Channel.FEDERATED:
            return await self.login_with_federated(
                credentials.get("assertion", ""),
                second_factor_code=second_factor_code,
                remember_me=remember_me,
                client=client,
            )
        return await self.verify_otp(
            credentials.get("email", ""),
            credentials.get("code", ""),
            purpose=credentials.get("purpose", OtpPurpose.LOGIN.value),
            second_factor_code=second_factor_code,
            remember_me=remember_me,
            client=client,
        )

    async def login_with_password(
        self,
        email: str,
        password: str,
        second_factor_code: str | None = None,
        remember_me: bool = False,
        client: ClientMeta | None = None,
    ) -> LoginResult:
        request = parse(
            LoginRequest,
            email=email,
            password=password,
            second_factor_code=second_factor_code,
            remember_me=remember_me,
        )
        async with self._operation("login", client) as trail:
            attempt = LoginAttempt(
                Channel.PASSWORD, trail, request.second_factor_code, request.remember_me
            )
            return await self._login.login_with_password(request.email, request.password, attempt)

    async def login_with_federated(
        self,
        assertion: str,
        second_factor_code: str | None = None,
        remember_me: bool = False,
        client: ClientMeta | None = None,
    ) -> LoginResult:
        request = parse(
            FederatedLoginRequest,
            assertion=assertion,
            second_factor_code=second_factor_code,
            remember_me=remember_me,
        )
        async with self._operation("federated login", client) as trail:
            attempt = LoginAttempt(Channel.FEDERATED, trail, request.second_factor_code, request.remember_me)
            return await self._login.login_with_federated(request.assertion, attempt)

    async def request_otp(
        self,
        email: str,
        purpose: OtpPurpose | str = OtpPurpose.LOGIN,
        client: ClientMeta | None = None,
    ) -> ActionResult:
        request = parse(OtpRequest, email=email, purpose=purpose)
        async with self._operation("otp request", client) as trail:
            status = await self._otp.request_code(request.email, request.purpose)
            if status is OtpRequestStatus.RATE_LIMITED:
                trail.record("auth.otp.rate_limited", email=request.email, purpose=request.purpose.value)
                return ActionResult(RejectReason.RATE_LIMITED)
            trail.record("auth.otp.requested", email=request.email, purpose=request.purpose.value)
            return ActionResult()

    async def verify_otp(
        self,
        email: str,
        code: str,
        purpose: OtpPurpose | str = OtpPurpose.LOGIN,
        second_factor_code: str | None = None,
        remember_me: bool = False,
        client: ClientMeta | None = None,
    ) -> LoginResult:
        request = parse(
            OtpVerifyRequest,
            email=email,
            code=code,
            purpose=purpose,
            second_factor_code=second_factor_code,
            remember_me=remember_me,
        )
        async with self._operation("otp login", client) as trail:
            attempt = LoginAttempt(Channel.ONE_TIME_CODE, trail, request.second_factor_code, request.remember_me)
            return await self._login.login_with_code(request.email, request.code, attempt, request.purpose)

    # Sessions

    async def refresh_session(self, refresh_token: str, client: ClientMeta | None = None) -> RefreshResult:
        if not refresh_token:
            return RefreshResult(reason=RejectReason.SESSION_INVALID)
        async with self._operation("refresh", client) as trail:
            return await self._sessions.refresh_session(refresh_token, trail)

    async def logout(self, session_id: str, client: ClientMeta | None = None) -> ActionResult:
        async with self._operation("logout", client) as trail:
            session = await self._sessions.get_session(session_id) if session_id else None
            if session is not None:
                await self._sessions.destroy_session(session_id)
                trail.record("auth.logout", actor=session.identity_id, target=session.identity_id, session_id=session_id)
            return ActionResult()

    async def logout_all(self, identity_id: str, client: ClientMeta | None = None) -> int:
        async with self._operation("logout all", client) as trail:
            removed = await self._sessions.destroy_all(identity_id)
            trail.record("auth.logout", actor=identity_id, target=identity_id, sessions=removed)
            return removed

    async def list_sessions(self, identity_id: str) -> list[Session]:
        return await self._sessions.list_sessions(identity_id)

    async def authenticate(self, access_token: str) -> IdentitySummary | None:
        """Resolve an access token to the identity behind a live session."""
        resolved = await self._sessions.resolve_access_token(access_token)
        if resolved is None:
            return None
        session, _ = resolved
        identity = await self._identities.get(session.identity_id)
        if identity is None or identity.is_blocked:
            return None
        return IdentitySummary.from_identity(identity)

    # Password reset

    async def request_password_reset(self, email: str, client: ClientMeta | None = None) -> ActionResult:
        """Send a reset link if the account exists. The result never says whether it does."""
        request = parse(PasswordResetRequest, email=email)
        async with self._operation("password reset request", client) as trail:
            resolution = await self._identities.resolve(request.email)
            if not isinstance(resolution, Found) or resolution.identity.is_blocked:
                trail.record("auth.password_reset.requested", email=request.email, delivered=False)
                return ActionResult()
            identity = resolution.identity
            token = await self._tokens.issue_token(identity.id, TokenPurpose.PASSWORD_RESET)
            try:
                await self._mailer.send_password_reset(identity.email, token)
            except DeliveryError:
                # The answer must match the unknown-email case.
                logger.exception("Failed to send password reset email")
                await self._tokens.revoke(identity.id, TokenPurpose.PASSWORD_RESET)
                trail.record("auth.password_reset.requested", actor=identity, target=identity, delivered=False)
                return ActionResult()
            trail.record("auth.password_reset.requested", actor=identity, target=identity, delivered=True)
            return ActionResult()

    async def validate_reset_token(self, token: str) -> bool:
        request = parse(TokenRequest, token=token)
        outcome = await self._tokens.validate_token(request.token, TokenPurpose.PASSWORD_RESET)
        return outcome.valid

    async def complete_password_reset(
        self,
        token: str,
        new_password: str,
        client: ClientMeta | None = None,
    ) -> ActionResult:
        request = parse(PasswordResetComplete, token=token, new_password=new_password)
        self._policy.enforce(request.new_password, field="new_password")
        password_digest = self._hasher.hash(request.new_password)

        async def set_password(record: SingleUseToken) -> None:
            # The password is written last so a failure before it leaves the old one in place.
            if self._settings.REVOKE_SESSIONS_ON_PASSWORD_RESET:
                await self._sessions.destroy_all(record.identity_id)
            await self._identities.update(record.identity_id, {"password_digest": password_digest})

        async with self._operation("password reset", client) as trail:
            outcome = await self._tokens.consume_token(request.token, TokenPurpose.PASSWORD_RESET, set_password)
            if not outcome.valid:
                target = outcome.record.identity_id if outcome.record else None
                trail.record("auth.password_reset.failed", target=target, reason=outcome.status.value)
                return ActionResult(outcome.reject_reason())
            identity_id = outcome.record.identity_id
            trail.record("auth.password_reset.completed", actor=identity_id, target=identity_id)
            return ActionResult()

    # Email verification

    async def request_email_verification(self, identity_id: str, client: ClientMeta | None = None) -> ActionResult:
        async with self._operation("email verification request", client) as trail:
            identity = await self._identities.get(identity_id)
            if identity is None or identity.email_verified:
                return ActionResult()
            token = await self._tokens.issue_token(identity.id, TokenPurpose.EMAIL_VERIFICATION)
            try:
                await self._mailer.send_email_verification(identity.email, token)
            except DeliveryError:
                logger.exception("Failed to send email verification email")
                await self._tokens.revoke(identity.id, TokenPurpose.EMAIL_VERIFICATION)
                trail.record("auth.email_verification.requested", actor=identity, target=identity, delivered=False)
                return ActionResult()
            trail.record("auth.email_verification.requested", actor=identity, target=identity, delivered=True)
            return ActionResult()

    async def complete_email_verification(self, token: str, client: ClientMeta | None = None) -> ActionResult:
        request = parse(TokenRequest, token=token)

        async def mark_verified(record: SingleUseToken) -> None:
            await self._identities.update(record.identity_id, {"email_verified": True})

        async with self._operation("email verification", client) as trail:
            outcome = await self._tokens.consume_token(request.token, TokenPurpose.EMAIL_VERIFICATION, mark_verified)
            if not outcome.valid:
                target = outcome.record.identity_id if outcome.record else None
                trail.record("auth.email_verification.failed", target=target, reason=outcome.status.value)
                return ActionResult(outcome.reject_reason())
            identity_id = outcome.record.identity_id
            trail.record("auth.email_verification.completed", actor=identity_id, target=identity_id)
            return ActionResult()

    # Second factor management

    async def begin_second_factor_setup(self, identity_id: str) -> SecondFactorSetup:
        identity = await self._require_identity(identity_id)
        return await self._second_factor.generate_secret(identity)

    async def confirm_second_factor_setup(
        self,
        identity_id: str,
        code: str,
        client: ClientMeta | None = None,
    ) -> ActionResult:
        async with self._operation("second factor setup", client) as trail:
            if not await self._second_factor.enable(identity_id, code):
                return ActionResult(RejectReason.INVALID_CODE)
            trail.record("auth.2fa.enabled", actor=identity_id, target=identity_id)
            return ActionResult()

    async def disable_second_factor(
        self,
        identity_id: str,
        code: str,
        client: ClientMeta | None = None,
    ) -> ActionResult:
        async with self._operation("second factor removal", client) as trail:
            if await self._second_factor.verify(identity_id, code) is not SecondFactorStatus.VALID:
                return ActionResult(RejectReason.INVALID_CODE)
            await self._second_factor.disable(identity_id)
            trail.record("auth.2fa.disabled", actor=identity_id, target=identity_id)
            return ActionResult()

    async def backup_codes_remaining(self, identity_id: str) -> int:
        return await self._second_factor.backup_codes_remaining(identity_id)

    def password_requirements(self) -> list[str]:
        return self._policy.requirements()

    async def drain(self) -> None:
        await self._audit.drain()

    async def _require_identity(self, identity_id: str) -> Identity:
        identity = await self._identities.get(identity_id)
        if identity is None:
            raise ValidationFailed.for_field("identity_id", "Unknown identity")
        return identity
