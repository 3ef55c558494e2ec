"""Session creation, refresh and teardown."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from authcore.config import AuthSettings
from authcore.interfaces.session_store import SessionStore
from authcore.models import ClientMeta, Session
from authcore.outcomes import IssuedSession, RefreshResult, RejectReason
from authcore.security import AccessTokenCodec, Clock, TokenVault, new_id, utc_now
from authcore.services.audit_service import AuditTrail
from authcore.services.identity_service import IdentityService

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(
        self,
        session_store: SessionStore,
        identities: IdentityService,
        vault: TokenVault,
        codec: AccessTokenCodec,
        settings: AuthSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._sessions = session_store
        self._identities = identities
        self._vault = vault
        self._codec = codec
        self._settings = settings
        self._clock = clock

    async def create_session(
        self,
        identity_id: str,
        window: timedelta,
        client: ClientMeta | None = None,
    ) -> IssuedSession:
        """Mint an access token valid for ``window`` and a refresh token with the fixed long lifetime."""
        now = self._clock()
        refresh_token = self._vault.generate_token(48)
        session = Session(
            id=new_id(),
            identity_id=identity_id,
            refresh_digest=self._vault.digest(refresh_token),
            created_at=now,
            access_expires_at=now + window,
            refresh_expires_at=now + timedelta(days=self._settings.REFRESH_TOKEN_EXPIRE_DAYS),
            access_window_seconds=int(window.total_seconds()),
            client=client or ClientMeta(),
        )
        await self._sessions.create(session)
        access_token = self._codec.encode(identity_id, session.id, now, session.access_expires_at)
        return IssuedSession(session_id=session.id, access_token=access_token, refresh_token=refresh_token)

    async def refresh_session(self, refresh_token: str, trail: AuditTrail) -> RefreshResult:
        """Exchange a refresh token for a new access token.

        Events land on ``trail``; the caller flushes it through the audit emitter.
        """
        now = self._clock()
        digest = self._vault.digest(refresh_token)

        session = await self._sessions.find_by_refresh_digest(digest)
        if session is None:
            replayed = await self._sessions.find_by_previous_digest(digest)
            if replayed is not None:
                # A rotated-out token came back: assume it leaked and end the session.
                await self._sessions.delete(replayed.id)
                logger.warning("Refresh token reuse detected for session %s", replayed.id)
                trail.record("auth.session.reuse_detected", target=replayed.identity_id, session_id=replayed.id)
            else:
                trail.record("auth.session.refresh_rejected", reason="not_found")
            return RefreshResult(reason=RejectReason.SESSION_INVALID)

        if session.refresh_expires_at <= now:
            await self._sessions.delete(session.id)
            trail.record("auth.session.refresh_rejected", target=session.identity_id, reason="expired")
            return RefreshResult(reason=RejectReason.SESSION_INVALID)

        identity = await self._identities.get(session.identity_id)
        if identity is None or identity.is_blocked:
            removed = await self._sessions.delete_for_identity(session.identity_id)
            logger.info("Refresh refused for blocked identity %s; removed %d sessions", session.identity_id, removed)
            trail.record("auth.session.refresh_rejected", target=session.identity_id, reason="account_blocked")
            return RefreshResult(reason=RejectReason.ACCOUNT_BLOCKED)

        access_expires_at = min(now + timedelta(seconds=session.access_window_seconds), session.refresh_expires_at)
        new_refresh_token = None
        if self._settings.ROTATE_REFRESH_TOKENS:
            new_refresh_token = self._vault.generate_token(48)
            updated = await self._sessions.rotate(
                session.id, digest, self._vault.digest(new_refresh_token), access_expires_at, now
            )
        else:
            updated = await self._sessions.extend(session.id, digest, access_expires_at, now)
        if not updated:
            trail.record("auth.session.refresh_rejected", target=session.identity_id, reason="concurrent_update")
            return RefreshResult(reason=RejectReason.SESSION_INVALID)

        access_token = self._codec.encode(session.identity_id, session.id, now, access_expires_at)
        trail.record("auth.session.refreshed", actor=identity, target=identity, session_id=session.id)
        return RefreshResult(access_token=access_token, refresh_token=new_refresh_token, session_id=session.id)

    async def get_session(self, session_id: str) -> Session | None:
        return await self._sessions.get(session_id)

    async def destroy_session(self, session_id: str) -> bool:
        return await self._sessions.delete(session_id)

    async def destroy_all(self, identity_id: str) -> int:
        return await self._sessions.delete_for_identity(identity_id)

    async def list_sessions(self, identity_id: str) -> list[Session]:
        return await self._sessions.list_for_identity(identity_id)

    async def resolve_access_token(self, access_token: str) -> tuple[Session, dict[str, Any]] | None:
        """Return the live session an access token belongs to, if any."""
        now = self._clock()
        payload = self._codec.decode(access_token, now)
        if payload is None:
            return None
        session = await self._sessions.get(payload["sid"])
        if session is None or session.identity_id != payload["sub"] or session.refresh_expires_at <= now:
            return None
        return session, payload

    async def purge(self) -> int:
        return await self._sessions.purge_expired(self._clock())
