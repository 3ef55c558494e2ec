import unittest

from authcore.exceptions import StorageError
from authcore.models import Channel
from authcore.services.identity_service import ChannelProfile, Found, NotFound
from tests.support import AuthTestCase


class TestIdentityService(AuthTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.identities = self.components.identities

    async def test_resolve_is_tagged(self):
        missing = await self.identities.resolve("Nobody@Example.com")
        created, _ = await self.identities.create_from_channel(
            Channel.PASSWORD, ChannelProfile(email="somebody@example.com", password_digest="x")
        )
        found = await self.identities.resolve(" SOMEBODY@example.com ")

        self.assertIsInstance(missing, NotFound)
        self.assertEqual(missing.email, "nobody@example.com")
        self.assertIsInstance(found, Found)
        self.assertEqual(found.identity.id, created.id)

    async def test_email_is_the_join_key_across_channels(self):
        first, created_first = await self.identities.create_from_channel(
            Channel.ONE_TIME_CODE, ChannelProfile(email="join@example.com")
        )
        second, created_second = await self.identities.create_from_channel(
            Channel.FEDERATED,
            ChannelProfile(email="JOIN@example.com", email_verified=True, federation_provider="google"),
        )

        self.assertTrue(created_first)
        self.assertFalse(created_second)
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.federation_provider, "google")

    async def test_password_channel_does_not_link_existing_identity(self):
        existing, _ = await self.identities.create_from_channel(
            Channel.ONE_TIME_CODE, ChannelProfile(email="taken@example.com")
        )

        identity, created = await self.identities.create_from_channel(
            Channel.PASSWORD, ChannelProfile(email="taken@example.com", password_digest="new")
        )

        self.assertFalse(created)
        self.assertEqual(identity, existing)

    async def test_update_of_missing_identity_is_storage_error(self):
        with self.assertRaises(StorageError):
            await self.identities.update("missing", {"email_verified": True})


if __name__ == "__main__":
    unittest.main()
