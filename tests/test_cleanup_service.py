import asyncio
import unittest
from datetime import timedelta

from authcore.models import Channel, TokenPurpose
from authcore.services.identity_service import ChannelProfile
from tests.support import AuthTestCase


class TestCleanupService(AuthTestCase):
    async def test_run_once_removes_only_expired_artifacts(self):
        identity, _ = await self.components.identities.create_from_channel(
            Channel.PASSWORD, ChannelProfile(email="sweep@example.com", password_digest="x")
        )
        await self.components.otp.request_code("sweep@example.com")
        await self.components.tokens.issue_token(identity.id, TokenPurpose.PASSWORD_RESET)
        await self.components.sessions.create_session(identity.id, timedelta(minutes=15))

        fresh = await self.components.cleanup.run_once()
        self.clock.advance(days=31)
        stale = await self.components.cleanup.run_once()

        self.assertEqual(fresh, {"otps": 0, "tokens": 0, "sessions": 0})
        self.assertEqual(stale, {"otps": 1, "tokens": 1, "sessions": 1})

    async def test_run_forever_stops_on_event(self):
        stop = asyncio.Event()
        task = asyncio.create_task(self.components.cleanup.run_forever(stop))
        await asyncio.sleep(0)

        stop.set()
        await asyncio.wait_for(task, timeout=1)

        self.assertTrue(task.done())


if __name__ == "__main__":
    unittest.main()
