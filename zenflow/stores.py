"""
Per-user activity logs and dashboard metadata.

Both stores are thin: they validate input and delegate to whichever backend
was selected at startup. Neither merges anything; a metadata write replaces
the whole blob, so partial updates are the caller's read-modify-write.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from zenflow.db import LogRecord, Number, StorageBackend
from zenflow.errors import InvalidInput


def coerce_value(value: Any) -> Number:
    """Numbers pass through, numeric strings are parsed, anything else is 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return 0
    else:
        return 0
    if isinstance(number, float) and not math.isfinite(number):
        return 0
    return number


class ActivityLogStore:
    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def list_logs(self, username: str) -> list[LogRecord]:
        """All entries for ``username``, in no particular order."""
        return self.backend.list_logs(username)

    def upsert_log(
        self,
        username: str,
        date: Optional[str],
        activity_type: Optional[str],
        value: Any = None,
    ) -> LogRecord:
        if not date or not activity_type:
            raise InvalidInput("date and type required")
        if not isinstance(date, str) or not isinstance(activity_type, str):
            raise InvalidInput("date and type must be strings")
        number = coerce_value(value)
        self.backend.upsert_log(username, date, activity_type, number)
        return LogRecord(
            username=username, date=date, activity_type=activity_type, value=number
        )


class MetadataStore:
    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def get_meta(self, username: str) -> dict:
        return self.backend.get_meta(username) or {}

    def set_meta(self, username: str, blob: Optional[dict]) -> None:
        if blob is None:
            blob = {}
        if not isinstance(blob, dict):
            raise InvalidInput("meta must be an object")
        self.backend.set_meta(username, blob)
