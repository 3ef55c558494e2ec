"""One-time code issuance and verification for the email login channel."""

from __future__ import annotations

import logging
from datetime import timedelta

from authcore.config import AuthSettings
from authcore.exceptions import DeliveryError
from authcore.interfaces.mailer import Mailer
from authcore.interfaces.otp_store import OtpStore
from authcore.models import OtpPurpose, OtpRecord
from authcore.outcomes import OtpOutcome, OtpRequestStatus, OtpStatus
from authcore.security import Clock, TokenVault, new_id, normalize_email, utc_now

logger = logging.getLogger(__name__)

# Conditional updates lose only to a concurrent attempt on the same record,
# so a handful of re-reads is always enough.
_MAX_CAS_RETRIES = 5


class OtpService:
    def __init__(
        self,
        otp_store: OtpStore,
        mailer: Mailer,
        vault: TokenVault,
        settings: AuthSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._otps = otp_store
        self._mailer = mailer
        self._vault = vault
        self._settings = settings
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._settings.MAX_OTP_ATTEMPTS

    def _generate_code(self) -> str:
        if self._settings.FIXED_OTP:
            return self._settings.FIXED_OTP
        return self._vault.generate_code(self._settings.OTP_LENGTH)

    async def request_code(self, email: str, purpose: OtpPurpose = OtpPurpose.LOGIN) -> OtpRequestStatus:
        email = normalize_email(email)
        now = self._clock()
        await self._otps.delete_expired(email, now)

        code = self._generate_code()
        record = OtpRecord(
            id=new_id(),
            email=email,
            purpose=purpose,
            code_digest=self._vault.digest(code),
            issued_at=now,
            expires_at=now + timedelta(minutes=self._settings.OTP_EXPIRY_MINUTES),
        )
        cooldown_start = now - timedelta(seconds=self._settings.OTP_REQUEST_COOLDOWN_SECONDS)
        if not await self._otps.insert_unless_cooling_down(record, issued_after=cooldown_start, now=now):
            logger.info("OTP request for purpose %s refused during cooldown", purpose.value)
            return OtpRequestStatus.RATE_LIMITED

        try:
            await self._mailer.send_otp(email, code, purpose, self._settings.OTP_EXPIRY_MINUTES)
        except Exception as exc:
            # An undeliverable code can never be used; drop it so a retry is not stuck behind the cooldown.
            await self._otps.delete(record.id)
            logger.exception("Failed to send OTP email")
            if isinstance(exc, DeliveryError):
                raise
            raise DeliveryError("Failed to send OTP email") from exc
        return OtpRequestStatus.SENT

    async def verify_code(
        self,
        email: str,
        code: str,
        purpose: OtpPurpose = OtpPurpose.LOGIN,
        mark_consumed: bool = True,
    ) -> OtpOutcome:
        """Check ``code`` against the active record for (email, purpose).

        With ``mark_consumed`` false a correct code stays usable; finish with
        :meth:`consume` once every other check of the attempt has passed.
        """
        email = normalize_email(email)
        for _ in range(_MAX_CAS_RETRIES):
            now = self._clock()
            record = await self._otps.find_active(email, purpose)
            if record is None:
                return OtpOutcome(OtpStatus.INVALID)

            if record.expires_at <= now:
                await self._otps.delete(record.id)
                return OtpOutcome(OtpStatus.EXPIRED)

            if record.attempts >= self.max_attempts:
                await self._otps.delete(record.id)
                return OtpOutcome(OtpStatus.ATTEMPTS_EXHAUSTED)

            if not self._vault.matches(code, record.code_digest):
                if await self._otps.increment_attempts(record.id, record.attempts):
                    remaining = self.max_attempts - record.attempts - 1
                    return OtpOutcome(OtpStatus.MISMATCH, remaining_attempts=remaining)
                continue

            if not mark_consumed:
                return OtpOutcome(OtpStatus.VALID, record=record)
            if await self._otps.mark_consumed(record.id, record.attempts, now):
                return OtpOutcome(OtpStatus.VALID, record=record)

        logger.warning("OTP verification gave up after repeated concurrent updates")
        return OtpOutcome(OtpStatus.INVALID)

    async def consume(self, record: OtpRecord) -> bool:
        """Consume a record previously validated with ``mark_consumed=False``."""
        now = self._clock()
        if record.expires_at <= now:
            return False
        return await self._otps.mark_consumed(record.id, record.attempts, now)

    async def purge(self) -> int:
        now = self._clock()
        retention = timedelta(hours=self._settings.OTP_RETENTION_HOURS)
        return await self._otps.purge(now, consumed_before=now - retention)
