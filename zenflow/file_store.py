"""
Single-file JSON storage backend.

All state lives in one document::

    {"accounts": {username: record},
     "logs": {username: {date: {type: value}}},
     "meta": {username: blob}}

Every operation reads the whole document, mutates it in memory and atomically
replaces the file. One process-wide lock spans that cycle for every
operation, so concurrent requests (even for different users) cannot
interleave and drop an update. This is a throughput ceiling: the backend is
meant for low request volume and exactly one server process.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from zenflow.db import AccountRecord, LogRecord, Number
from zenflow.errors import AccountExistsError, StartupError, StorageError

logger = logging.getLogger(__name__)

SECTIONS = ("accounts", "logs", "meta")


def empty_document() -> dict:
    return {section: {} for section in SECTIONS}


class FileBackend:
    kind = "file"

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.Lock()

    def ensure_file(self) -> None:
        """Create the backing file with an empty document if it is missing.

        Raises StartupError when the file cannot be created.
        """
        with self._lock:
            if self.path.exists():
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._write(empty_document())
            except OSError as exc:
                raise StartupError(
                    f"failed to create data file {self.path}: {exc}"
                ) from exc
            logger.info("Created data file %s", self.path)

    def _read(self) -> dict:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"cannot read {self.path}: {exc}", "read") from exc
        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise StorageError(f"corrupt data file {self.path}: {exc}", "read") from exc
        if not isinstance(document, dict) or any(
            not isinstance(document.get(section, {}), dict) for section in SECTIONS
        ):
            raise StorageError(f"corrupt data file {self.path}: bad shape", "read")
        for section in SECTIONS:
            document.setdefault(section, {})
        return document

    def _write(self, document: dict) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    @contextmanager
    def _transaction(self, operation: str, write: bool = True) -> Iterator[dict]:
        """Hold the lock across read, mutate and (optionally) write."""
        with self._lock:
            document = self._read()
            yield document
            if write:
                try:
                    self._write(document)
                except OSError as exc:
                    logger.error("Writing %s failed during %s: %s", self.path, operation, exc)
                    raise StorageError(
                        f"cannot write {self.path}: {exc}", operation
                    ) from exc

    def ping(self) -> bool:
        return self.path.is_file()

    def create_account(self, record: AccountRecord) -> None:
        with self._transaction("create_account") as document:
            accounts = document["accounts"]
            if record.username in accounts:
                raise AccountExistsError(record.username)
            accounts[record.username] = record.as_dict()

    def get_account(self, username: str) -> Optional[AccountRecord]:
        with self._transaction("get_account", write=False) as document:
            data = document["accounts"].get(username)
        if data is None:
            return None
        try:
            return AccountRecord.from_dict(username, data)
        except (KeyError, TypeError, AttributeError) as exc:
            raise StorageError(
                f"corrupt account record for {username!r}", "get_account"
            ) from exc

    def list_logs(self, username: str) -> list[LogRecord]:
        with self._transaction("list_logs", write=False) as document:
            by_date = document["logs"].get(username) or {}
        return [
            LogRecord(username=username, date=date, activity_type=activity_type, value=value)
            for date, by_type in by_date.items()
            for activity_type, value in by_type.items()
        ]

    def upsert_log(
        self, username: str, date: str, activity_type: str, value: Number
    ) -> None:
        with self._transaction("upsert_log") as document:
            by_date = document["logs"].setdefault(username, {})
            by_date.setdefault(date, {})[activity_type] = value

    def get_meta(self, username: str) -> Optional[dict]:
        with self._transaction("get_meta", write=False) as document:
            return document["meta"].get(username)

    def set_meta(self, username: str, data: dict) -> None:
        with self._transaction("set_meta") as document:
            document["meta"][username] = data
