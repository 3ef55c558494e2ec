"""Security utilities for auth."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import bcrypt
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError
from jose import JWTError, jwt

from authcore.config import AuthSettings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _is_bcrypt_digest(digest: str) -> bool:
    return digest.startswith(("$2a$", "$2b$", "$2y$"))


class SecretHasher:
    """Argon2id password hashing.

    Digests produced by the older bcrypt scheme still verify, and are
    reported by :meth:`needs_rehash` so callers can upgrade them.
    """

    def __init__(self, settings: AuthSettings) -> None:
        self._hasher = PasswordHasher(
            time_cost=settings.ARGON2_TIME_COST,
            memory_cost=settings.ARGON2_MEMORY_COST,
            parallelism=settings.ARGON2_PARALLELISM,
            type=Type.ID,
        )
        self._dummy_digest = self._hasher.hash(secrets.token_urlsafe(16))

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, password: str, digest: str | None) -> bool:
        """Verify a password against a digest.

        An empty digest still costs one full hash so that callers cannot
        distinguish passwordless accounts by timing.
        """
        if not digest:
            self.burn(password)
            return False
        if _is_bcrypt_digest(digest):
            try:
                return bcrypt.checkpw(password.encode("utf-8"), digest.encode("utf-8"))
            except ValueError:
                return False
        try:
            return self._hasher.verify(digest, password)
        except (VerificationError, InvalidHashError):
            return False

    def burn(self, password: str) -> None:
        """Spend the time of a real verification against a throwaway digest."""
        try:
            self._hasher.verify(self._dummy_digest, password)
        except VerificationError:
            pass

    def needs_rehash(self, digest: str) -> bool:
        if not digest:
            return False
        if _is_bcrypt_digest(digest):
            return True
        try:
            return self._hasher.check_needs_rehash(digest)
        except InvalidHashError:
            return True

    def unusable_digest(self) -> str:
        """Digest of a random secret nobody knows, for accounts without a local password."""
        return self.hash(secrets.token_urlsafe(32))


class TokenVault:
    """Random secrets plus the peppered digests stored in their place."""

    def __init__(self, pepper: str) -> None:
        self._pepper = pepper.encode("utf-8")

    def generate_token(self, nbytes: int = 32) -> str:
        return secrets.token_urlsafe(nbytes)

    def generate_code(self, length: int = 6) -> str:
        return f"{secrets.randbelow(10 ** length):0{length}d}"

    def digest(self, secret: str) -> str:
        return hmac.new(self._pepper, secret.encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, secret: str, digest: str) -> bool:
        return hmac.compare_digest(self.digest(secret), digest)


class AccessTokenCodec:
    """Signed JWT access tokens bound to a session."""

    def __init__(self, settings: AuthSettings) -> None:
        self._secret = settings.JWT_SECRET
        self._algorithm = settings.JWT_ALGORITHM

    def encode(self, identity_id: str, session_id: str, issued_at: datetime, expires_at: datetime) -> str:
        payload: dict[str, Any] = {
            "sub": identity_id,
            "sid": session_id,
            "type": "access",
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str, now: datetime) -> dict[str, Any] | None:
        # Expiry is checked against the injected clock, not the wall clock.
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None
        if payload.get("type") != "access" or not payload.get("sub") or not payload.get("sid"):
            return None
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or exp <= now.timestamp():
            return None
        return payload
