"""Google OAuth service."""

from __future__ import annotations

import logging
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx

from authcore.config import AuthSettings
from authcore.exceptions import FederatedProviderError, InvalidAssertion
from authcore.models import FederatedProfile

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleOAuthService:
    """Federated verifier treating a Google authorization code as the assertion."""

    provider = "google"

    def __init__(self, settings: AuthSettings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._http_client = http_client

    def generate_auth_url(self) -> dict[str, str]:
        if not self._settings.GOOGLE_CLIENT_ID or not self._settings.GOOGLE_REDIRECT_URI:
            raise FederatedProviderError("Google OAuth not configured")

        state = secrets.token_urlsafe(24)
        query = urlencode(
            {
                "client_id": self._settings.GOOGLE_CLIENT_ID,
                "redirect_uri": self._settings.GOOGLE_REDIRECT_URI,
                "response_type": "code",
                "scope": "openid email profile",
                "state": state,
                "prompt": "select_account",
            }
        )
        return {"auth_url": f"{GOOGLE_AUTH_URL}?{query}", "state": state}

    async def verify(self, assertion: str) -> FederatedProfile:
        settings = self._settings
        if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET or not settings.GOOGLE_REDIRECT_URI:
            raise FederatedProviderError("Google OAuth not configured")

        token_payload = {
            "code": assertion,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "redirect_uri": settings.GOOGLE_REDIRECT_URI,
            "grant_type": "authorization_code",
        }

        try:
            if self._http_client is not None:
                userinfo = await self._exchange(self._http_client, token_payload)
            else:
                async with httpx.AsyncClient(timeout=10) as client:
                    userinfo = await self._exchange(client, token_payload)
        except httpx.HTTPError as exc:
            raise FederatedProviderError(f"Google request failed: {exc}") from exc

        email = userinfo.get("email")
        if not email:
            raise InvalidAssertion("Google account missing email")

        return FederatedProfile(
            email=email,
            email_verified=userinfo.get("email_verified") is True,
            provider=self.provider,
            subject=userinfo.get("sub"),
            given_name=userinfo.get("given_name"),
            family_name=userinfo.get("family_name"),
        )

    async def _exchange(self, client: httpx.AsyncClient, token_payload: dict[str, str]) -> dict[str, Any]:
        token_response = await client.post(
            GOOGLE_TOKEN_URL,
            data=token_payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if token_response.status_code >= 500:
            raise FederatedProviderError(f"Google token endpoint returned {token_response.status_code}")
        if token_response.status_code != 200:
            logger.info("Google refused authorization code with status %s", token_response.status_code)
            raise InvalidAssertion("Failed to exchange Google code")

        access_token = token_response.json().get("access_token")
        if not access_token:
            raise InvalidAssertion("Google token missing access token")

        userinfo_response = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if userinfo_response.status_code != 200:
            raise FederatedProviderError(f"Google userinfo returned {userinfo_response.status_code}")
        return userinfo_response.json()
