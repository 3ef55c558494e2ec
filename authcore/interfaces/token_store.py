"""Single-use token store interface."""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, Protocol

from authcore.models import SingleUseToken, TokenPurpose

SideEffect = Callable[[SingleUseToken], Awaitable[None]]


class TokenStore(Protocol):
    async def insert_if_absent(self, record: SingleUseToken) -> bool:
        """Store ``record`` unless its digest already exists."""
        ...

    async def find(self, digest: str) -> SingleUseToken | None:
        ...

    async def consume(
        self,
        digest: str,
        purpose: TokenPurpose,
        now: datetime,
        side_effect: SideEffect,
    ) -> SingleUseToken | None:
        """Flip ``consumed`` and run ``side_effect`` as one unit.

        No-op returning None unless the record exists with the given purpose,
        is unconsumed and unexpired. If ``side_effect`` raises, the flag is
        restored and the error propagates.
        """
        ...

    async def revoke_outstanding(self, identity_id: str, purpose: TokenPurpose) -> int:
        ...

    async def purge_expired(self, now: datetime) -> int:
        ...
