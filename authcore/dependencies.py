"""Auth dependency wiring."""

from __future__ import annotations

from authcore.config import AuthSettings, load_settings
from authcore.interfaces import (
    AuditSink,
    FederatedVerifier,
    IdentityStore,
    Mailer,
    OtpStore,
    RateLimiter,
    SecondFactorStore,
    SessionStore,
    TokenStore,
)
from authcore.security import AccessTokenCodec, Clock, SecretHasher, TokenVault, utc_now
from authcore.services.audit_service import AuditEmitter
from authcore.services.auth_service import AuthService
from authcore.services.cleanup_service import CleanupService
from authcore.services.email_service import EmailService
from authcore.services.identity_service import IdentityService
from authcore.services.login_service import LoginService
from authcore.services.oauth_service import GoogleOAuthService
from authcore.services.otp_service import OtpService
from authcore.services.second_factor_service import SecondFactorService
from authcore.services.session_service import SessionService
from authcore.services.token_service import TokenService
from authcore.stores.memory_store import (
    LoggingAuditSink,
    MemoryIdentityStore,
    MemoryOtpStore,
    MemoryRateLimiter,
    MemorySecondFactorStore,
    MemorySessionStore,
    MemoryTokenStore,
)


class AuthComponents:
    """Everything :func:`build_components` wired, for callers that need more than the facade."""

    def __init__(
        self,
        settings: AuthSettings,
        auth: AuthService,
        identities: IdentityService,
        sessions: SessionService,
        otp: OtpService,
        tokens: TokenService,
        second_factor: SecondFactorService,
        cleanup: CleanupService,
    ) -> None:
        self.settings = settings
        self.auth = auth
        self.identities = identities
        self.sessions = sessions
        self.otp = otp
        self.tokens = tokens
        self.second_factor = second_factor
        self.cleanup = cleanup


def build_components(
    settings: AuthSettings | None = None,
    *,
    identity_store: IdentityStore | None = None,
    session_store: SessionStore | None = None,
    token_store: TokenStore | None = None,
    otp_store: OtpStore | None = None,
    second_factor_store: SecondFactorStore | None = None,
    mailer: Mailer | None = None,
    federated_verifier: FederatedVerifier | None = None,
    audit_sink: AuditSink | None = None,
    rate_limiter: RateLimiter | None = None,
    clock: Clock = utc_now,
) -> AuthComponents:
    settings = settings or load_settings()
    # Fall back to in-memory stores for development/testing.
    identity_store = identity_store or MemoryIdentityStore()
    session_store = session_store or MemorySessionStore()
    token_store = token_store or MemoryTokenStore()
    otp_store = otp_store or MemoryOtpStore()
    second_factor_store = second_factor_store or MemorySecondFactorStore()
    mailer = mailer or EmailService(settings)
    federated_verifier = federated_verifier or GoogleOAuthService(settings)
    audit_sink = audit_sink or LoggingAuditSink()
    rate_limiter = rate_limiter or MemoryRateLimiter()

    hasher = SecretHasher(settings)
    vault = TokenVault(settings.TOKEN_PEPPER)
    codec = AccessTokenCodec(settings)

    identities = IdentityService(identity_store, hasher, clock)
    sessions = SessionService(session_store, identities, vault, codec, settings, clock)
    otp = OtpService(otp_store, mailer, vault, settings, clock)
    tokens = TokenService(token_store, identities, vault, settings, clock)
    second_factor = SecondFactorService(second_factor_store, identities, vault, settings, clock)
    login = LoginService(
        identities, hasher, otp, second_factor, sessions, federated_verifier, rate_limiter, settings
    )
    auth = AuthService(
        identities=identities,
        hasher=hasher,
        login=login,
        sessions=sessions,
        otp=otp,
        tokens=tokens,
        second_factor=second_factor,
        mailer=mailer,
        audit=AuditEmitter(audit_sink),
        settings=settings,
        clock=clock,
    )
    return AuthComponents(
        settings=settings,
        auth=auth,
        identities=identities,
        sessions=sessions,
        otp=otp,
        tokens=tokens,
        second_factor=second_factor,
        cleanup=CleanupService(otp, tokens, sessions, settings),
    )


def build_auth_service(settings: AuthSettings | None = None, **overrides) -> AuthService:
    return build_components(settings, **overrides).auth
