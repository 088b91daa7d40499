import unittest
from datetime import datetime, timedelta, timezone

import jwt

from bambiland.auth import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from bambiland.config import Settings
from bambiland.db import UserRecord


class AuthTests(unittest.TestCase):
    def setUp(self):
        self.settings = Settings(auth_secret="test-secret")
        self.user = UserRecord(
            id="u1", username="alice", email="a@example.com", password_hash="", role="admin"
        )

    def test_password_hashing(self):
        hashed = hash_password("secret123", rounds=4)
        self.assertNotEqual(hashed, "secret123")
        self.assertTrue(verify_password("secret123", hashed))
        self.assertFalse(verify_password("wrong", hashed))
        self.assertFalse(verify_password("secret123", "plain-text"))

    def test_token_roundtrip(self):
        token = create_access_token(self.user, self.settings)
        session = decode_access_token(token, self.settings)
        self.assertEqual(session.id, "u1")
        self.assertEqual(session.name, "alice")
        self.assertTrue(session.is_admin)

    def test_rejects_bad_tokens(self):
        token = create_access_token(self.user, self.settings)
        other = Settings(auth_secret="another-secret")
        self.assertIsNone(decode_access_token(token, other))

        expired = jwt.encode(
            {"sub": "u1", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            "test-secret",
            algorithm="HS256",
        )
        self.assertIsNone(decode_access_token(expired, self.settings))
        self.assertIsNone(decode_access_token("garbage", self.settings))


if __name__ == "__main__":
    unittest.main()
