"""In-memory auth stores.

Every conditional operation runs under the store's lock, which gives the
same find-matching-prior-state-else-no-op semantics a database would give
with a conditional UPDATE.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from datetime import datetime
from typing import Any

from authcore.interfaces.token_store import SideEffect
from authcore.models import (
    AuditEvent,
    Identity,
    OtpPurpose,
    OtpRecord,
    SecondFactorEnrolment,
    Session,
    SingleUseToken,
    TokenPurpose,
)

logger = logging.getLogger(__name__)


class MemoryIdentityStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_id: dict[str, Identity] = {}
        self._id_by_email: dict[str, str] = {}

    async def get(self, identity_id: str) -> Identity | None:
        async with self._lock:
            return self._by_id.get(identity_id)

    async def find_by_email(self, email: str) -> Identity | None:
        async with self._lock:
            identity_id = self._id_by_email.get(email.lower())
            return self._by_id.get(identity_id) if identity_id else None

    async def insert_if_absent(self, identity: Identity) -> tuple[Identity, bool]:
        async with self._lock:
            email = identity.email.lower()
            existing_id = self._id_by_email.get(email)
            if existing_id:
                return self._by_id[existing_id], False
            stored = dataclasses.replace(identity, email=email)
            self._by_id[stored.id] = stored
            self._id_by_email[email] = stored.id
            return stored, True

    async def update(self, identity_id: str, changes: dict[str, Any]) -> Identity | None:
        async with self._lock:
            identity = self._by_id.get(identity_id)
            if not identity:
                return None
            updated = dataclasses.replace(identity, **changes)
            self._by_id[identity_id] = updated
            return updated


class MemorySessionStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}

    async def create(self, session: Session) -> None:
        async with self._lock:
            self._sessions[session.id] = session

    async def get(self, session_id: str) -> Session | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def find_by_refresh_digest(self, digest: str) -> Session | None:
        async with self._lock:
            return next((s for s in self._sessions.values() if s.refresh_digest == digest), None)

    async def find_by_previous_digest(self, digest: str) -> Session | None:
        async with self._lock:
            return next((s for s in self._sessions.values() if s.previous_refresh_digest == digest), None)

    async def list_for_identity(self, identity_id: str) -> list[Session]:
        async with self._lock:
            sessions = [s for s in self._sessions.values() if s.identity_id == identity_id]
        return sorted(sessions, key=lambda s: s.created_at)

    async def extend(self, session_id: str, expected_digest: str, access_expires_at: datetime, now: datetime) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if not session or session.refresh_digest != expected_digest or session.refresh_expires_at <= now:
                return False
            self._sessions[session_id] = dataclasses.replace(
                session, access_expires_at=access_expires_at, last_refreshed_at=now
            )
            return True

    async def rotate(
        self,
        session_id: str,
        expected_digest: str,
        new_digest: str,
        access_expires_at: datetime,
        now: datetime,
    ) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if not session or session.refresh_digest != expected_digest or session.refresh_expires_at <= now:
                return False
            self._sessions[session_id] = dataclasses.replace(
                session,
                refresh_digest=new_digest,
                previous_refresh_digest=expected_digest,
                access_expires_at=access_expires_at,
                last_refreshed_at=now,
            )
            return True

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def delete_for_identity(self, identity_id: str) -> int:
        async with self._lock:
            doomed = [sid for sid, s in self._sessions.items() if s.identity_id == identity_id]
            for session_id in doomed:
                del self._sessions[session_id]
            return len(doomed)

    async def purge_expired(self, now: datetime) -> int:
        async with self._lock:
            doomed = [sid for sid, s in self._sessions.items() if s.refresh_expires_at <= now]
            for session_id in doomed:
                del self._sessions[session_id]
            return len(doomed)


class MemoryTokenStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._tokens: dict[str, SingleUseToken] = {}

    async def insert_if_absent(self, record: SingleUseToken) -> bool:
        async with self._lock:
            if record.digest in self._tokens:
                return False
            self._tokens[record.digest] = record
            return True

    async def find(self, digest: str) -> SingleUseToken | None:
        async with self._lock:
            return self._tokens.get(digest)

    async def consume(
        self,
        digest: str,
        purpose: TokenPurpose,
        now: datetime,
        side_effect: SideEffect,
    ) -> SingleUseToken | None:
        async with self._lock:
            record = self._tokens.get(digest)
            if not record or record.purpose != purpose or record.consumed or record.expires_at <= now:
                return None
            consumed = dataclasses.replace(record, consumed=True, consumed_at=now)
            self._tokens[digest] = consumed
            try:
                await side_effect(consumed)
            except BaseException:
                self._tokens[digest] = record
                raise
            return consumed

    async def revoke_outstanding(self, identity_id: str, purpose: TokenPurpose) -> int:
        async with self._lock:
            doomed = [
                digest
                for digest, record in self._tokens.items()
                if record.identity_id == identity_id and record.purpose == purpose and not record.consumed
            ]
            for digest in doomed:
                del self._tokens[digest]
            return len(doomed)

    async def purge_expired(self, now: datetime) -> int:
        async with self._lock:
            doomed = [digest for digest, record in self._tokens.items() if record.expires_at <= now]
            for digest in doomed:
                del self._tokens[digest]
            return len(doomed)


class MemoryOtpStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._records: dict[str, OtpRecord] = {}

    async def delete_expired(self, email: str, now: datetime) -> int:
        async with self._lock:
            doomed = [rid for rid, r in self._records.items() if r.email == email and r.expires_at <= now]
            for record_id in doomed:
                del self._records[record_id]
            return len(doomed)

    async def insert_unless_cooling_down(self, record: OtpRecord, issued_after: datetime, now: datetime) -> bool:
        async with self._lock:
            active = [
                r
                for r in self._records.values()
                if r.email == record.email and r.purpose == record.purpose and not r.consumed
            ]
            if any(r.expires_at > now and r.issued_at > issued_after for r in active):
                return False
            for stale in active:
                del self._records[stale.id]
            self._records[record.id] = record
            return True

    async def find_active(self, email: str, purpose: OtpPurpose) -> OtpRecord | None:
        async with self._lock:
            candidates = [
                r for r in self._records.values() if r.email == email and r.purpose == purpose and not r.consumed
            ]
        return max(candidates, key=lambda r: r.issued_at, default=None)

    async def delete(self, record_id: str) -> None:
        async with self._lock:
            self._records.pop(record_id, None)

    async def increment_attempts(self, record_id: str, expected_attempts: int) -> bool:
        async with self._lock:
            record = self._records.get(record_id)
            if not record or record.consumed or record.attempts != expected_attempts:
                return False
            self._records[record_id] = dataclasses.replace(record, attempts=expected_attempts + 1)
            return True

    async def mark_consumed(self, record_id: str, expected_attempts: int, now: datetime) -> bool:
        async with self._lock:
            record = self._records.get(record_id)
            if not record or record.consumed or record.attempts != expected_attempts:
                return False
            self._records[record_id] = dataclasses.replace(record, consumed=True, consumed_at=now)
            return True

    async def purge(self, now: datetime, consumed_before: datetime) -> int:
        async with self._lock:
            doomed = [
                rid
                for rid, r in self._records.items()
                if r.expires_at <= now or (r.consumed and r.issued_at < consumed_before)
            ]
            for record_id in doomed:
                del self._records[record_id]
            return len(doomed)


class MemorySecondFactorStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._enrolments: dict[str, SecondFactorEnrolment] = {}

    async def upsert_pending(self, enrolment: SecondFactorEnrolment) -> None:
        async with self._lock:
            self._enrolments[enrolment.identity_id] = dataclasses.replace(enrolment, enabled=False)

    async def get(self, identity_id: str) -> SecondFactorEnrolment | None:
        async with self._lock:
            return self._enrolments.get(identity_id)

    async def activate(self, identity_id: str, step: int, now: datetime) -> bool:
        async with self._lock:
            enrolment = self._enrolments.get(identity_id)
            if not enrolment or enrolment.enabled:
                return False
            self._enrolments[identity_id] = dataclasses.replace(
                enrolment, enabled=True, last_used_at=now, last_used_step=step
            )
            return True

    async def record_step(self, identity_id: str, step: int, now: datetime) -> bool:
        async with self._lock:
            enrolment = self._enrolments.get(identity_id)
            if not enrolment or not enrolment.enabled:
                return False
            if enrolment.last_used_step is not None and step <= enrolment.last_used_step:
                return False
            self._enrolments[identity_id] = dataclasses.replace(enrolment, last_used_at=now, last_used_step=step)
            return True

    async def remove_backup_code(self, identity_id: str, digest: str, now: datetime) -> bool:
        async with self._lock:
            enrolment = self._enrolments.get(identity_id)
            if not enrolment or not enrolment.enabled or digest not in enrolment.backup_code_digests:
                return False
            remaining = tuple(d for d in enrolment.backup_code_digests if d != digest)
            self._enrolments[identity_id] = dataclasses.replace(
                enrolment, backup_code_digests=remaining, last_used_at=now
            )
            return True

    async def delete(self, identity_id: str) -> None:
        async with self._lock:
            self._enrolments.pop(identity_id, None)


class MemoryAuditSink:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.events: list[AuditEvent] = []

    async def write(self, event: AuditEvent) -> None:
        async with self._lock:
            self.events.append(event)

    def actions(self) -> list[str]:
        return [event.action for event in self.events]


class LoggingAuditSink:
    """Audit sink that only writes to the application log."""

    async def write(self, event: AuditEvent) -> None:
        logger.info(
            "audit action=%s actor=%s target=%s metadata=%s ip=%s",
            event.action,
            event.actor_id or event.actor_type,
            event.target_id,
            event.metadata,
            event.client.ip_address,
        )


class MemoryRateLimiter:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._hits: dict[str, list[float]] = {}

    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.time()
        async with self._lock:
            hits = self._hits.get(key, [])
            hits = [timestamp for timestamp in hits if (now - timestamp) < window_seconds]
            if len(hits) >= limit:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True
