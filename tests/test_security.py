import unittest
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import jwt

from authcore.security import AccessTokenCodec, SecretHasher, TokenVault
from tests.support import make_settings


class TestSecretHasher(unittest.TestCase):
    def setUp(self):
        self.settings = make_settings()
        self.hasher = SecretHasher(self.settings)

    def test_hash_verifies_only_the_original_password(self):
        digest = self.hasher.hash("correct-password")

        self.assertTrue(digest.startswith("$argon2id$"))
        self.assertTrue(self.hasher.verify("correct-password", digest))
        self.assertFalse(self.hasher.verify("wrong-password", digest))

    def test_empty_or_garbage_digest_never_matches(self):
        self.assertFalse(self.hasher.verify("anything", ""))
        self.assertFalse(self.hasher.verify("anything", None))
        self.assertFalse(self.hasher.verify("anything", "not-a-digest"))

    def test_legacy_bcrypt_digest_verifies_and_needs_rehash(self):
        legacy = bcrypt.hashpw(b"old-password", bcrypt.gensalt(rounds=4)).decode("utf-8")

        self.assertTrue(self.hasher.verify("old-password", legacy))
        self.assertFalse(self.hasher.verify("other-password", legacy))
        self.assertTrue(self.hasher.needs_rehash(legacy))

    def test_outdated_argon2_parameters_need_rehash(self):
        current = self.hasher.hash("pw")
        stronger = SecretHasher(make_settings(ARGON2_TIME_COST=2))

        self.assertFalse(self.hasher.needs_rehash(current))
        self.assertTrue(stronger.needs_rehash(current))

    def test_unusable_digest_is_not_empty(self):
        digest = self.hasher.unusable_digest()

        self.assertTrue(digest)
        self.assertFalse(self.hasher.verify("", digest))


class TestTokenVault(unittest.TestCase):
    def test_digest_is_peppered_and_deterministic(self):
        vault = TokenVault("pepper-a")
        other = TokenVault("pepper-b")

        self.assertEqual(vault.digest("secret"), vault.digest("secret"))
        self.assertNotEqual(vault.digest("secret"), other.digest("secret"))
        self.assertTrue(vault.matches("secret", vault.digest("secret")))
        self.assertFalse(vault.matches("secret", other.digest("secret")))

    def test_generated_code_is_zero_padded_digits(self):
        vault = TokenVault("pepper")
        for _ in range(50):
            code = vault.generate_code(6)
            self.assertEqual(len(code), 6)
            self.assertTrue(code.isdigit())

    def test_generated_tokens_are_unique(self):
        vault = TokenVault("pepper")
        tokens = {vault.generate_token() for _ in range(100)}
        self.assertEqual(len(tokens), 100)


class TestAccessTokenCodec(unittest.TestCase):
    def setUp(self):
        self.settings = make_settings()
        self.codec = AccessTokenCodec(self.settings)
        self.now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def test_round_trip_carries_identity_and_session(self):
        token = self.codec.encode("user-1", "session-1", self.now, self.now + timedelta(minutes=5))

        payload = self.codec.decode(token, self.now)

        self.assertEqual(payload["sub"], "user-1")
        self.assertEqual(payload["sid"], "session-1")
        self.assertEqual(payload["type"], "access")

    def test_expiry_follows_supplied_clock(self):
        token = self.codec.encode("user-1", "session-1", self.now, self.now + timedelta(minutes=5))

        self.assertIsNotNone(self.codec.decode(token, self.now + timedelta(minutes=4)))
        self.assertIsNone(self.codec.decode(token, self.now + timedelta(minutes=5)))

    def test_rejects_foreign_signature_and_wrong_type(self):
        forged = jwt.encode(
            {"sub": "user-1", "sid": "s", "type": "access", "exp": int(self.now.timestamp()) + 60},
            "another-secret",
            algorithm="HS256",
        )
        refresh_typed = jwt.encode(
            {"sub": "user-1", "sid": "s", "type": "refresh", "exp": int(self.now.timestamp()) + 60},
            self.settings.JWT_SECRET,
            algorithm="HS256",
        )

        self.assertIsNone(self.codec.decode(forged, self.now))
        self.assertIsNone(self.codec.decode(refresh_typed, self.now))
        self.assertIsNone(self.codec.decode("garbage", self.now))


if __name__ == "__main__":
    unittest.main()
