"""
Account registration, password checks and session tokens.

Tokens are stateless: a Fernet token (AES-CBC + HMAC-SHA256) over the claims
``{"username", "iat", "exp"}``, keyed from the server secret. Nothing is
persisted, so there is no server-side revocation; a token stays valid until
``exp``. Logging out is a client-side matter.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from datetime import timedelta
from typing import Callable

from cryptography.fernet import Fernet, InvalidToken
from werkzeug.security import check_password_hash, generate_password_hash

from zenflow.db import AccountRecord, StorageBackend
from zenflow.errors import AccountExistsError, InvalidInput, Unauthorized

logger = logging.getLogger(__name__)

DEFAULT_HASH_METHOD = "scrypt"
DEFAULT_TOKEN_TTL = timedelta(days=7)


def hash_password(password: str, method: str = DEFAULT_HASH_METHOD) -> str:
    """Salted, deliberately slow one-way hash."""
    return generate_password_hash(password, method=method)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def _derive_key(secret: str) -> bytes:
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class TokenSigner:
    """Issues and verifies session tokens signed with a server-held secret."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("a token secret is required")
        self._fernet = Fernet(_derive_key(secret))
        self._ttl_seconds = int(ttl.total_seconds())
        self._clock = clock

    def issue(self, username: str) -> str:
        now = int(self._clock())
        claims = {"username": username, "iat": now, "exp": now + self._ttl_seconds}
        payload = json.dumps(claims, separators=(",", ":")).encode("utf-8")
        return self._fernet.encrypt_at_time(payload, now).decode("ascii")

    def verify(self, token: str) -> str:
        """Return the username embedded in a valid, unexpired token."""
        if not token:
            raise Unauthorized("invalid token")
        try:
            payload = self._fernet.decrypt(token.encode("ascii"))
            claims = json.loads(payload)
        except (InvalidToken, UnicodeError, ValueError):
            raise Unauthorized("invalid token") from None

        username = claims.get("username") if isinstance(claims, dict) else None
        expires_at = claims.get("exp") if isinstance(claims, dict) else None
        if not isinstance(username, str) or not username:
            raise Unauthorized("invalid token")
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            raise Unauthorized("invalid token")
        if expires_at <= self._clock():
            raise Unauthorized("token expired")
        return username


class Authenticator:
    """Creates accounts and trades credentials for session tokens."""

    def __init__(
        self,
        backend: StorageBackend,
        signer: TokenSigner,
        hash_method: str = DEFAULT_HASH_METHOD,
    ):
        self.backend = backend
        self.signer = signer
        self.hash_method = hash_method

    @staticmethod
    def _require_credentials(username: str | None, password: str | None) -> None:
        if not username or not password:
            raise InvalidInput("username and password required")

    def register(self, username: str, password: str) -> str:
        self._require_credentials(username, password)
        # create_account is the authoritative uniqueness check.
        if self.backend.get_account(username) is not None:
            raise AccountExistsError(username)
        record = AccountRecord(
            username=username,
            password_hash=hash_password(password, self.hash_method),
        )
        self.backend.create_account(record)
        logger.info("Registered account", extra={"username": username})
        return self.signer.issue(username)

    def authenticate(self, username: str, password: str) -> str:
        self._require_credentials(username, password)
        account = self.backend.get_account(username)
        if account is None or not verify_password(account.password_hash, password):
            logger.warning("Failed login", extra={"username": username})
            raise Unauthorized("invalid credentials")
        return self.signer.issue(username)

    def verify_token(self, token: str) -> str:
        return self.signer.verify(token)
