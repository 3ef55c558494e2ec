import asyncio
import unittest
from datetime import timedelta

from authcore.exceptions import TokenIssueError
from authcore.models import Channel, SingleUseToken, TokenPurpose
from authcore.outcomes import RejectReason, TokenStatus
from authcore.security import TokenVault
from authcore.services.identity_service import ChannelProfile
from authcore.services.token_service import TokenService
from tests.support import AuthTestCase


class CollidingTokenStore:
    """Token store that reports every digest as already taken."""

    def __init__(self):
        self.attempts = 0

    async def insert_if_absent(self, record):
        self.attempts += 1
        return False

    async def revoke_outstanding(self, identity_id, purpose):
        return 0


class TestTokenService(AuthTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.tokens = self.components.tokens
        self.identity, _ = await self.components.identities.create_from_channel(
            Channel.PASSWORD,
            ChannelProfile(email="reset@example.com", password_digest="x"),
        )

    async def test_token_expires_after_validity(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET, timedelta(hours=1))

        immediately = await self.tokens.validate_token(token, TokenPurpose.PASSWORD_RESET)
        self.clock.advance(hours=1, seconds=1)
        later = await self.tokens.validate_token(token, TokenPurpose.PASSWORD_RESET)

        self.assertTrue(immediately.valid)
        self.assertFalse(later.valid)
        self.assertEqual(later.status, TokenStatus.EXPIRED)
        self.assertEqual(later.reject_reason(), RejectReason.TOKEN_EXPIRED)

    async def test_validation_is_repeatable(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)

        for _ in range(3):
            self.assertTrue((await self.tokens.validate_token(token, TokenPurpose.PASSWORD_RESET)).valid)

    async def test_wrong_purpose_or_unknown_token_is_invalid(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)

        wrong_purpose = await self.tokens.validate_token(token, TokenPurpose.EMAIL_VERIFICATION)
        unknown = await self.tokens.validate_token("not-a-token", TokenPurpose.PASSWORD_RESET)

        self.assertEqual(wrong_purpose.status, TokenStatus.INVALID)
        self.assertEqual(unknown.status, TokenStatus.INVALID)

    async def test_only_digest_is_stored_and_referenced_on_identity(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)

        self.assertIsNone(await self.token_store.find(token))
        identity = await self.identity_store.get(self.identity.id)
        self.assertIsNotNone(identity.reset_token_digest)
        self.assertIsNotNone(await self.token_store.find(identity.reset_token_digest))

    async def test_consume_applies_side_effect_once(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)
        applied: list[SingleUseToken] = []

        async def side_effect(record):
            applied.append(record)

        first = await self.tokens.consume_token(token, TokenPurpose.PASSWORD_RESET, side_effect)
        second = await self.tokens.consume_token(token, TokenPurpose.PASSWORD_RESET, side_effect)

        self.assertTrue(first.valid)
        self.assertEqual(second.status, TokenStatus.USED)
        self.assertEqual(len(applied), 1)
        identity = await self.identity_store.get(self.identity.id)
        self.assertIsNone(identity.reset_token_digest)

    async def test_simultaneous_consumption_applies_once(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)
        applied: list[SingleUseToken] = []

        async def side_effect(record):
            await asyncio.sleep(0)
            applied.append(record)

        outcomes = await asyncio.gather(
            self.tokens.consume_token(token, TokenPurpose.PASSWORD_RESET, side_effect),
            self.tokens.consume_token(token, TokenPurpose.PASSWORD_RESET, side_effect),
        )

        self.assertEqual(sorted(outcome.status.value for outcome in outcomes), ["used", "valid"])
        self.assertEqual(len(applied), 1)

    async def test_revoke_drops_token_and_identity_reference(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.EMAIL_VERIFICATION)

        self.assertEqual(await self.tokens.revoke(self.identity.id, TokenPurpose.EMAIL_VERIFICATION), 1)

        outcome = await self.tokens.validate_token(token, TokenPurpose.EMAIL_VERIFICATION)
        identity = await self.identity_store.get(self.identity.id)
        self.assertEqual(outcome.status, TokenStatus.INVALID)
        self.assertIsNone(identity.verification_token_digest)

    async def test_failing_side_effect_leaves_token_unconsumed(self):
        token = await self.tokens.issue_token(self.identity.id, TokenPurpose.EMAIL_VERIFICATION)

        async def broken(record):
            raise RuntimeError("storage went away")

        with self.assertRaises(RuntimeError):
            await self.tokens.consume_token(token, TokenPurpose.EMAIL_VERIFICATION, broken)

        self.assertTrue((await self.tokens.validate_token(token, TokenPurpose.EMAIL_VERIFICATION)).valid)

    async def test_issuing_again_revokes_previous_token(self):
        first = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)
        second = await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)

        self.assertEqual((await self.tokens.validate_token(first, TokenPurpose.PASSWORD_RESET)).status, TokenStatus.INVALID)
        self.assertTrue((await self.tokens.validate_token(second, TokenPurpose.PASSWORD_RESET)).valid)

    async def test_collisions_exhaust_retries(self):
        colliding = CollidingTokenStore()
        tokens = TokenService(colliding, self.components.identities, TokenVault("pepper"), self.settings, self.clock)

        with self.assertRaises(TokenIssueError):
            await tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)

        self.assertEqual(colliding.attempts, self.settings.TOKEN_ISSUE_MAX_RETRIES)

    async def test_purge_removes_expired_tokens(self):
        await self.tokens.issue_token(self.identity.id, TokenPurpose.PASSWORD_RESET)

        self.assertEqual(await self.tokens.purge(), 0)
        self.clock.advance(hours=2)
        self.assertEqual(await self.tokens.purge(), 1)


if __name__ == "__main__":
    unittest.main()
