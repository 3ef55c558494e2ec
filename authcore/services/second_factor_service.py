"""Two-factor authentication with TOTP (RFC 6238) and single-use backup codes."""

from __future__ import annotations

import hmac
import logging
import secrets
from datetime import datetime

import pyotp

from authcore.config import AuthSettings
from authcore.interfaces.second_factor_store import SecondFactorStore
from authcore.models import Identity, SecondFactorEnrolment
from authcore.outcomes import SecondFactorSetup, SecondFactorStatus
from authcore.security import Clock, TokenVault, utc_now
from authcore.services.identity_service import IdentityService

logger = logging.getLogger(__name__)

TOTP_DIGITS = 6


def _normalize_code(code: str) -> str:
    return code.strip().replace(" ", "").replace("-", "").upper()


class SecondFactorService:
    def __init__(
        self,
        store: SecondFactorStore,
        identities: IdentityService,
        vault: TokenVault,
        settings: AuthSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._identities = identities
        self._vault = vault
        self._settings = settings
        self._clock = clock

    async def generate_secret(self, identity: Identity) -> SecondFactorSetup:
        """Start enrolment. Nothing is enforced until :meth:`enable` sees a valid code."""
        secret = pyotp.random_base32()
        backup_codes = [secrets.token_hex(4).upper() for _ in range(self._settings.BACKUP_CODES_COUNT)]
        await self._store.upsert_pending(
            SecondFactorEnrolment(
                identity_id=identity.id,
                secret=secret,
                backup_code_digests=tuple(self._vault.digest(code) for code in backup_codes),
                enabled=False,
                created_at=self._clock(),
            )
        )
        uri = pyotp.TOTP(secret, digits=TOTP_DIGITS).provisioning_uri(
            name=identity.email, issuer_name=self._settings.TOTP_ISSUER
        )
        return SecondFactorSetup(secret=secret, provisioning_uri=uri, backup_codes=backup_codes)

    async def enable(self, identity_id: str, code: str) -> bool:
        enrolment = await self._store.get(identity_id)
        if enrolment is None or enrolment.enabled:
            return False
        now = self._clock()
        step = self._match_totp(enrolment.secret, _normalize_code(code), now)
        if step is None or not await self._store.activate(identity_id, step, now):
            return False
        await self._identities.update(identity_id, {"second_factor_enabled": True})
        logger.info("Second factor enabled for identity %s", identity_id)
        return True

    async def disable(self, identity_id: str) -> None:
        await self._store.delete(identity_id)
        await self._identities.update(identity_id, {"second_factor_enabled": False})
        logger.info("Second factor disabled for identity %s", identity_id)

    async def is_enabled(self, identity_id: str) -> bool:
        enrolment = await self._store.get(identity_id)
        return bool(enrolment and enrolment.enabled)

    async def backup_codes_remaining(self, identity_id: str) -> int:
        enrolment = await self._store.get(identity_id)
        if enrolment is None or not enrolment.enabled:
            return 0
        return len(enrolment.backup_code_digests)

    async def verify(self, identity_id: str, code: str) -> SecondFactorStatus:
        """Accept a current TOTP code or an unused backup code."""
        enrolment = await self._store.get(identity_id)
        if enrolment is None or not enrolment.enabled:
            return SecondFactorStatus.INVALID

        now = self._clock()
        code = _normalize_code(code)
        if len(code) == TOTP_DIGITS and code.isdigit():
            step = self._match_totp(enrolment.secret, code, now)
            # A step may be spent once; a second use of the same code is a replay.
            if step is not None and await self._store.record_step(identity_id, step, now):
                return SecondFactorStatus.VALID
            return SecondFactorStatus.INVALID

        if await self._store.remove_backup_code(identity_id, self._vault.digest(code), now):
            logger.info("Backup code used for identity %s", identity_id)
            return SecondFactorStatus.VALID
        return SecondFactorStatus.INVALID

    def _match_totp(self, secret: str, code: str, now: datetime) -> int | None:
        if len(code) != TOTP_DIGITS or not code.isdigit():
            return None
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS)
        window = self._settings.TOTP_VALID_WINDOW
        for offset in range(-window, window + 1):
            if hmac.compare_digest(totp.at(now, counter_offset=offset), code):
                return totp.timecode(now) + offset
        return None
