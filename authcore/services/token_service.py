"""Single-use tokens for password reset and email verification."""

from __future__ import annotations

import logging
from datetime import timedelta

from authcore.config import AuthSettings
from authcore.exceptions import TokenIssueError
from authcore.interfaces.token_store import SideEffect, TokenStore
from authcore.models import SingleUseToken, TokenPurpose
from authcore.outcomes import TokenOutcome, TokenStatus
from authcore.security import Clock, TokenVault, utc_now
from authcore.services.identity_service import IdentityService

logger = logging.getLogger(__name__)

_IDENTITY_REFERENCE = {
    TokenPurpose.PASSWORD_RESET: "reset_token_digest",
    TokenPurpose.EMAIL_VERIFICATION: "verification_token_digest",
}


class TokenService:
    def __init__(
        self,
        token_store: TokenStore,
        identities: IdentityService,
        vault: TokenVault,
        settings: AuthSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._tokens = token_store
        self._identities = identities
        self._vault = vault
        self._settings = settings
        self._clock = clock

    def default_validity(self, purpose: TokenPurpose) -> timedelta:
        if purpose is TokenPurpose.PASSWORD_RESET:
            return timedelta(minutes=self._settings.PASSWORD_RESET_EXPIRY_MINUTES)
        return timedelta(minutes=self._settings.EMAIL_VERIFICATION_EXPIRY_MINUTES)

    async def issue_token(
        self,
        identity_id: str,
        purpose: TokenPurpose,
        validity: timedelta | None = None,
    ) -> str:
        """Store a fresh token's digest and return the plaintext for out-of-band delivery.

        Earlier unconsumed tokens of the same purpose stop working.
        """
        now = self._clock()
        validity = validity or self.default_validity(purpose)
        await self._tokens.revoke_outstanding(identity_id, purpose)

        for _ in range(self._settings.TOKEN_ISSUE_MAX_RETRIES):
            token = self._vault.generate_token()
            record = SingleUseToken(
                digest=self._vault.digest(token),
                identity_id=identity_id,
                purpose=purpose,
                issued_at=now,
                expires_at=now + validity,
            )
            if await self._tokens.insert_if_absent(record):
                await self._identities.update(identity_id, {_IDENTITY_REFERENCE[purpose]: record.digest})
                return token
            logger.warning("Token digest collision for purpose %s, regenerating", purpose.value)

        raise TokenIssueError(f"Could not issue a unique {purpose.value} token")

    async def revoke(self, identity_id: str, purpose: TokenPurpose) -> int:
        """Drop every unconsumed token of ``purpose`` for the identity and its reference."""
        revoked = await self._tokens.revoke_outstanding(identity_id, purpose)
        await self._identities.update(identity_id, {_IDENTITY_REFERENCE[purpose]: None})
        return revoked

    async def validate_token(self, token: str, purpose: TokenPurpose) -> TokenOutcome:
        """Report whether ``token`` could be consumed now. Has no side effects."""
        record = await self._tokens.find(self._vault.digest(token))
        if record is None or record.purpose != purpose:
            return TokenOutcome(TokenStatus.INVALID)
        if record.consumed:
            return TokenOutcome(TokenStatus.USED, record)
        if record.expires_at <= self._clock():
            return TokenOutcome(TokenStatus.EXPIRED, record)
        return TokenOutcome(TokenStatus.VALID, record)

    async def consume_token(self, token: str, purpose: TokenPurpose, side_effect: SideEffect) -> TokenOutcome:
        """Mark ``token`` consumed and apply ``side_effect`` together, or do neither."""
        outcome = await self.validate_token(token, purpose)
        if not outcome.valid:
            return outcome

        async def apply(record: SingleUseToken) -> None:
            await side_effect(record)
            await self._clear_identity_reference(record)

        consumed = await self._tokens.consume(self._vault.digest(token), purpose, self._clock(), apply)
        if consumed is None:
            # Lost to a concurrent consumer or expiry between the two reads.
            retry = await self.validate_token(token, purpose)
            return retry if not retry.valid else TokenOutcome(TokenStatus.INVALID)
        return TokenOutcome(TokenStatus.VALID, consumed)

    async def _clear_identity_reference(self, record: SingleUseToken) -> None:
        field = _IDENTITY_REFERENCE[record.purpose]
        identity = await self._identities.get(record.identity_id)
        if identity is not None and getattr(identity, field) == record.digest:
            await self._identities.update(identity.id, {field: None})

    async def purge(self) -> int:
        return await self._tokens.purge_expired(self._clock())
