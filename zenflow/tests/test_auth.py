import unittest
from datetime import timedelta

from zenflow.auth import Authenticator, TokenSigner, hash_password, verify_password
from zenflow.db import DatabaseBackend
from zenflow.errors import AccountExistsError, InvalidInput, Unauthorized

FAST_HASH = "pbkdf2:sha256:1000"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class PasswordHashTests(unittest.TestCase):
    def test_hash_is_salted_and_verifies(self):
        first = hash_password("pw123", FAST_HASH)
        second = hash_password("pw123", FAST_HASH)
        self.assertNotEqual(first, second)
        self.assertNotIn("pw123", first)
        self.assertTrue(verify_password(first, "pw123"))
        self.assertFalse(verify_password(first, "pw124"))

    def test_default_method_is_scrypt(self):
        self.assertTrue(hash_password("pw").startswith("scrypt:"))


class TokenSignerTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.signer = TokenSigner("secret", clock=self.clock)

    def test_issue_and_verify(self):
        token = self.signer.issue("alice")
        self.assertEqual(self.signer.verify(token), "alice")

    def test_token_expires_after_seven_days(self):
        token = self.signer.issue("alice")
        self.clock.now += timedelta(days=7).total_seconds() - 1
        self.assertEqual(self.signer.verify(token), "alice")
        self.clock.now += 1
        with self.assertRaises(Unauthorized):
            self.signer.verify(token)

    def test_custom_ttl(self):
        signer = TokenSigner("secret", ttl=timedelta(hours=1), clock=self.clock)
        token = signer.issue("alice")
        self.clock.now += 3601
        with self.assertRaises(Unauthorized):
            signer.verify(token)

    def test_tampered_token_is_rejected(self):
        token = self.signer.issue("alice")
        flipped = "A" if token[-5] != "A" else "B"
        tampered = token[:-5] + flipped + token[-4:]
        with self.assertRaises(Unauthorized):
            self.signer.verify(tampered)

    def test_token_signed_with_other_secret_is_rejected(self):
        other = TokenSigner("other-secret", clock=self.clock).issue("alice")
        with self.assertRaises(Unauthorized):
            self.signer.verify(other)

    def test_malformed_tokens_are_rejected(self):
        for token in ("", "abc", "not.a.jwt", "ééé"):
            with self.assertRaises(Unauthorized):
                self.signer.verify(token)

    def test_empty_secret_is_refused(self):
        with self.assertRaises(ValueError):
            TokenSigner("")


class AuthenticatorTests(unittest.TestCase):
    def setUp(self):
        self.backend = DatabaseBackend("sqlite+pysqlite:///:memory:")
        self.signer = TokenSigner("secret")
        self.auth = Authenticator(self.backend, self.signer, hash_method=FAST_HASH)

    def test_register_then_authenticate(self):
        token = self.auth.register("alice", "pw123")
        self.assertEqual(self.auth.verify_token(token), "alice")
        login_token = self.auth.authenticate("alice", "pw123")
        self.assertEqual(self.auth.verify_token(login_token), "alice")

    def test_register_stores_hash_not_password(self):
        self.auth.register("alice", "pw123")
        account = self.backend.get_account("alice")
        self.assertNotEqual(account.password_hash, "pw123")
        self.assertGreater(account.created_at, 0)

    def test_register_duplicate_conflicts(self):
        self.auth.register("alice", "pw123")
        with self.assertRaises(AccountExistsError):
            self.auth.register("alice", "different")

    def test_register_rejects_empty_fields(self):
        for username, password in (("", "pw"), ("alice", ""), (None, "pw")):
            with self.assertRaises(InvalidInput):
                self.auth.register(username, password)
        self.assertIsNone(self.backend.get_account("alice"))

    def test_authenticate_failures(self):
        self.auth.register("alice", "pw123")
        with self.assertRaises(Unauthorized):
            self.auth.authenticate("alice", "wrong")
        with self.assertRaises(Unauthorized):
            self.auth.authenticate("nobody", "pw123")
        with self.assertRaises(InvalidInput):
            self.auth.authenticate("alice", "")

    def test_authenticate_does_not_touch_account(self):
        self.auth.register("alice", "pw123")
        before = self.backend.get_account("alice")
        self.auth.authenticate("alice", "pw123")
        self.assertEqual(self.backend.get_account("alice"), before)


if __name__ == "__main__":
    unittest.main()
