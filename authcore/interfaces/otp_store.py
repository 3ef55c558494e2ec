"""One-time code store interface."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from authcore.models import OtpPurpose, OtpRecord


class OtpStore(Protocol):
    async def delete_expired(self, email: str, now: datetime) -> int:
        ...

    async def insert_unless_cooling_down(self, record: OtpRecord, issued_after: datetime, now: datetime) -> bool:
        """Replace the active code for (email, purpose) with ``record``.

        Refuses, returning False, while an unconsumed unexpired code issued
        after ``issued_after`` exists.
        """
        ...

    async def find_active(self, email: str, purpose: OtpPurpose) -> OtpRecord | None:
        """Latest unconsumed record, expired or not."""
        ...

    async def delete(self, record_id: str) -> None:
        ...

    async def increment_attempts(self, record_id: str, expected_attempts: int) -> bool:
        ...

    async def mark_consumed(self, record_id: str, expected_attempts: int, now: datetime) -> bool:
        ...

    async def purge(self, now: datetime, consumed_before: datetime) -> int:
        ...
