"""Identity store interface."""

from __future__ import annotations

from typing import Any, Protocol

from authcore.models import Identity


class IdentityStore(Protocol):
    async def get(self, identity_id: str) -> Identity | None:
        ...

    async def find_by_email(self, email: str) -> Identity | None:
        ...

    async def insert_if_absent(self, identity: Identity) -> tuple[Identity, bool]:
        """Insert unless the email is taken; return the stored identity and whether it was inserted."""
        ...

    async def update(self, identity_id: str, changes: dict[str, Any]) -> Identity | None:
        ...
