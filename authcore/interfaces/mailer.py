"""Outbound delivery interface."""

from __future__ import annotations

from typing import Protocol

from authcore.models import OtpPurpose


class Mailer(Protocol):
    """Delivers secrets out of band. Raises :class:`~authcore.exceptions.DeliveryError` on failure."""

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose, expires_in_minutes: int) -> None:
        ...

    async def send_password_reset(self, email: str, token: str) -> None:
        ...

    async def send_email_verification(self, email: str, token: str) -> None:
        ...
