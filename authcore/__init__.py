"""
Authentication core.

Credential verification, identity resolution and session lifecycle behind
storage and delivery ports.
"""

from authcore.config import AuthSettings, load_settings
from authcore.dependencies import AuthComponents, build_auth_service, build_components
from authcore.exceptions import (
    AuthException,
    DeliveryError,
    FederatedProviderError,
    InfrastructureError,
    InvalidAssertion,
    StorageError,
    TokenIssueError,
    ValidationFailed,
)
from authcore.models import AccountStatus, Channel, ClientMeta, OtpPurpose, TokenPurpose
from authcore.outcomes import ActionResult, LoginResult, LoginStatus, RefreshResult, RejectReason
from authcore.services.auth_service import AuthService

__all__ = [
    "AccountStatus",
    "ActionResult",
    "AuthComponents",
    "AuthException",
    "AuthService",
    "AuthSettings",
    "Channel",
    "ClientMeta",
    "DeliveryError",
    "FederatedProviderError",
    "InfrastructureError",
    "InvalidAssertion",
    "LoginResult",
    "LoginStatus",
    "OtpPurpose",
    "RefreshResult",
    "RejectReason",
    "StorageError",
    "TokenIssueError",
    "TokenPurpose",
    "ValidationFailed",
    "build_auth_service",
    "build_components",
    "load_settings",
]
