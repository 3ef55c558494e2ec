"""Identity resolution.

Email is the only join key between channels, so every channel creates or
links identities through :meth:`IdentityService.create_from_channel`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from authcore.exceptions import StorageError
from authcore.interfaces.identity_store import IdentityStore
from authcore.models import Channel, FederatedProfile, Identity
from authcore.security import Clock, SecretHasher, new_id, normalize_email, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Found:
    identity: Identity


@dataclass(frozen=True)
class NotFound:
    email: str


IdentityResolution = Union[Found, NotFound]


@dataclass(frozen=True)
class ChannelProfile:
    """What a channel knows about a person at creation time."""

    email: str
    email_verified: bool = False
    password_digest: str = ""
    federation_provider: str | None = None
    given_name: str | None = None
    family_name: str | None = None

    @classmethod
    def from_federated(cls, profile: FederatedProfile) -> "ChannelProfile":
        return cls(
            email=profile.email,
            email_verified=profile.email_verified,
            federation_provider=profile.provider,
            given_name=profile.given_name,
            family_name=profile.family_name,
        )


class IdentityService:
    def __init__(self, identity_store: IdentityStore, hasher: SecretHasher, clock: Clock = utc_now) -> None:
        self._identities = identity_store
        self._hasher = hasher
        self._clock = clock

    async def get(self, identity_id: str) -> Identity | None:
        return await self._identities.get(identity_id)

    async def resolve(self, email: str) -> IdentityResolution:
        normalized = normalize_email(email)
        identity = await self._identities.find_by_email(normalized)
        if identity is None:
            return NotFound(normalized)
        return Found(identity)

    async def create_from_channel(self, channel: Channel, profile: ChannelProfile) -> tuple[Identity, bool]:
        """Create the identity a channel needs, or link the one that already owns the email.

        Returns the identity and whether it was newly created.
        """
        now = self._clock()
        email = normalize_email(profile.email)
        if channel is Channel.PASSWORD:
            password_digest, verified = profile.password_digest, profile.email_verified
        elif channel is Channel.FEDERATED:
            # The account can only be reached through the provider.
            password_digest, verified = self._hasher.unusable_digest(), True
        else:
            # Receiving a working code at the address verifies it.
            password_digest, verified = "", True

        candidate = Identity(
            id=new_id(),
            email=email,
            password_digest=password_digest,
            email_verified=verified,
            federation_provider=profile.federation_provider if channel is Channel.FEDERATED else None,
            given_name=profile.given_name,
            family_name=profile.family_name,
            created_at=now,
            updated_at=now,
        )
        identity, created = await self._identities.insert_if_absent(candidate)
        if created:
            logger.info("Created identity %s via %s channel", identity.id, channel.value)
            return identity, True
        if channel is Channel.PASSWORD:
            return identity, False
        return await self.link_channel(identity, channel, profile), False

    async def link_channel(self, identity: Identity, channel: Channel, profile: ChannelProfile) -> Identity:
        """Record on an existing identity that a verifying channel vouched for its email."""
        changes: dict = {}
        if not identity.email_verified:
            changes["email_verified"] = True
        if channel is Channel.FEDERATED and identity.federation_provider != profile.federation_provider:
            changes["federation_provider"] = profile.federation_provider
            if not identity.given_name and profile.given_name:
                changes["given_name"] = profile.given_name
            if not identity.family_name and profile.family_name:
                changes["family_name"] = profile.family_name
        if not changes:
            return identity
        return await self.update(identity.id, changes)

    async def update(self, identity_id: str, changes: dict) -> Identity:
        changes = {**changes, "updated_at": self._clock()}
        updated = await self._identities.update(identity_id, changes)
        if updated is None:
            raise StorageError(f"Identity {identity_id} vanished during update")
        return updated
