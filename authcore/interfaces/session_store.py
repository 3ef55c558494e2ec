"""Session store interface."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from authcore.models import Session


class SessionStore(Protocol):
    async def create(self, session: Session) -> None:
        ...

    async def get(self, session_id: str) -> Session | None:
        ...

    async def find_by_refresh_digest(self, digest: str) -> Session | None:
        ...

    async def find_by_previous_digest(self, digest: str) -> Session | None:
        ...

    async def list_for_identity(self, identity_id: str) -> list[Session]:
        ...

    async def extend(self, session_id: str, expected_digest: str, access_expires_at: datetime, now: datetime) -> bool:
        """Update access expiry only while the session still holds ``expected_digest``."""
        ...

    async def rotate(
        self,
        session_id: str,
        expected_digest: str,
        new_digest: str,
        access_expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Swap the refresh digest only while the session still holds ``expected_digest``."""
        ...

    async def delete(self, session_id: str) -> bool:
        ...

    async def delete_for_identity(self, identity_id: str) -> int:
        ...

    async def purge_expired(self, now: datetime) -> int:
        ...
