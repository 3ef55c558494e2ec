"""Ports the auth core consumes from its collaborators."""

from authcore.interfaces.audit_sink import AuditSink
from authcore.interfaces.federated_verifier import FederatedVerifier
from authcore.interfaces.identity_store import IdentityStore
from authcore.interfaces.mailer import Mailer
from authcore.interfaces.otp_store import OtpStore
from authcore.interfaces.rate_limiter import RateLimiter
from authcore.interfaces.second_factor_store import SecondFactorStore
from authcore.interfaces.session_store import SessionStore
from authcore.interfaces.token_store import SideEffect, TokenStore

__all__ = [
    "AuditSink",
    "FederatedVerifier",
    "IdentityStore",
    "Mailer",
    "OtpStore",
    "RateLimiter",
    "SecondFactorStore",
    "SessionStore",
    "SideEffect",
    "TokenStore",
]
