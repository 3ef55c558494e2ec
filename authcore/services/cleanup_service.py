"""Background removal of expired auth artifacts."""

from __future__ import annotations

import asyncio
import logging

from authcore.config import AuthSettings
from authcore.services.otp_service import OtpService
from authcore.services.session_service import SessionService
from authcore.services.token_service import TokenService

logger = logging.getLogger(__name__)


class CleanupService:
    def __init__(
        self,
        otp: OtpService,
        tokens: TokenService,
        sessions: SessionService,
        settings: AuthSettings,
    ) -> None:
        self._otp = otp
        self._tokens = tokens
        self._sessions = sessions
        self._settings = settings

    async def run_once(self) -> dict[str, int]:
        # Each purge is its own short store operation; no lock is held across them.
        counts = {
            "otps": await self._otp.purge(),
            "tokens": await self._tokens.purge(),
            "sessions": await self._sessions.purge(),
        }
        logger.info(
            "Auth cleanup removed otps=%d tokens=%d sessions=%d",
            counts["otps"],
            counts["tokens"],
            counts["sessions"],
        )
        return counts

    async def run_forever(self, stop: asyncio.Event) -> None:
        interval = self._settings.CLEANUP_INTERVAL_SECONDS
        while not stop.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Auth cleanup pass failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
