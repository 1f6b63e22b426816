"""Error hierarchy for the Zenflow backend.

Every error carries a machine-readable code and the HTTP status the API
answers with. Internal errors keep their cause for the logs but only ever
expose a generic message to clients.
"""

from __future__ import annotations

GENERIC_INTERNAL_MESSAGE = "server error"


class ZenflowError(Exception):
    """Base exception for all Zenflow errors."""

    def __init__(self, message: str, code: str, http_status: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status

    @property
    def public_message(self) -> str:
        return self.message

    def to_response(self) -> dict:
        return {"error": self.public_message}


class InvalidInput(ZenflowError):
    """Missing or malformed required fields."""

    def __init__(self, message: str = "invalid input"):
        super().__init__(message, "INVALID_INPUT", 400)


class Unauthorized(ZenflowError):
    """Bad credentials, or a missing, invalid or expired token."""

    def __init__(self, message: str = "unauthorized"):
        super().__init__(message, "UNAUTHORIZED", 401)


class Conflict(ZenflowError):
    def __init__(self, message: str = "conflict"):
        super().__init__(message, "CONFLICT", 409)


class AccountExistsError(Conflict):
    """Raised by storage backends when a username is already taken."""

    def __init__(self, username: str):
        super().__init__("user exists")
        self.username = username


class Internal(ZenflowError):
    """Unexpected fault. The message is logged, never returned."""

    def __init__(self, message: str = GENERIC_INTERNAL_MESSAGE, code: str = "INTERNAL"):
        super().__init__(message, code, 500)

    @property
    def public_message(self) -> str:
        return GENERIC_INTERNAL_MESSAGE


class StorageError(Internal):
    """A storage backend failed (I/O, driver, corrupt document)."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message, "STORAGE_ERROR")
        self.operation = operation


class StartupError(RuntimeError):
    """No durable store could be set up; the process must not serve."""
