"""Federated identity verifier interface."""

from __future__ import annotations

from typing import Protocol

from authcore.models import FederatedProfile


class FederatedVerifier(Protocol):
    async def verify(self, assertion: str) -> FederatedProfile:
        """Return the provider's profile, or raise :class:`~authcore.exceptions.InvalidAssertion`."""
        ...
