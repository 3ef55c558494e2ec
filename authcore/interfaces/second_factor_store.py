"""Second-factor enrolment store interface."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from authcore.models import SecondFactorEnrolment


class SecondFactorStore(Protocol):
    async def upsert_pending(self, enrolment: SecondFactorEnrolment) -> None:
        ...

    async def get(self, identity_id: str) -> SecondFactorEnrolment | None:
        ...

    async def activate(self, identity_id: str, step: int, now: datetime) -> bool:
        ...

    async def record_step(self, identity_id: str, step: int, now: datetime) -> bool:
        """Remember ``step`` as used; False if it is not newer than the last used one."""
        ...

    async def remove_backup_code(self, identity_id: str, digest: str, now: datetime) -> bool:
        ...

    async def delete(self, identity_id: str) -> None:
        ...
