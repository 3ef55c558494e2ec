"""Email delivery service."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx

from authcore.config import AuthSettings
from authcore.exceptions import DeliveryError
from authcore.models import OtpPurpose

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"

_OTP_SUBJECTS = {
    OtpPurpose.LOGIN: "Your sign-in code",
    OtpPurpose.VERIFICATION: "Your verification code",
    OtpPurpose.PASSWORD_RESET: "Your password reset code",
}


class EmailService:
    """Mailer backed by the Resend HTTP API."""

    def __init__(self, settings: AuthSettings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._http_client = http_client

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose, expires_in_minutes: int) -> None:
        await self._send(
            email,
            _OTP_SUBJECTS[purpose],
            f"<p>Your code is <strong>{code}</strong>. It expires in {expires_in_minutes} minutes.</p>",
        )

    async def send_password_reset(self, email: str, token: str) -> None:
        link = self._link("/reset-password", token)
        await self._send(
            email,
            "Reset your password",
            f'<p>Use <a href="{link}">this link</a> to choose a new password.</p>',
        )

    async def send_email_verification(self, email: str, token: str) -> None:
        link = self._link("/verify-email", token)
        await self._send(
            email,
            "Verify your email address",
            f'<p>Confirm your address by following <a href="{link}">this link</a>.</p>',
        )

    def _link(self, path: str, token: str) -> str:
        return f"{self._settings.FRONTEND_URL.rstrip('/')}{path}?{urlencode({'token': token})}"

    async def _send(self, email: str, subject: str, html: str) -> None:
        if self._settings.EMAIL_PROVIDER != "resend":
            raise DeliveryError(f"Email provider {self._settings.EMAIL_PROVIDER!r} cannot deliver mail")
        if not self._settings.RESEND_API_KEY:
            raise DeliveryError("Resend API key not configured")

        payload = {
            "from": f"{self._settings.EMAIL_FROM_NAME} <{self._settings.EMAIL_FROM_ADDRESS}>",
            "to": [email],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._settings.RESEND_API_KEY}"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(RESEND_URL, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=10) as client:
                    response = await client.post(RESEND_URL, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Resend request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error("Resend rejected email with status %s", response.status_code)
            raise DeliveryError(f"Resend responded with status {response.status_code}")
