"""
Storage abstraction with a SQLAlchemy database backend.

The file backend implementing the same protocol lives in ``file_store``.
"""

from __future__ import annotations

import logging
import math
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional, Protocol, Union

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Float,
    String,
    create_engine,
    select,
    text,
)
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from zenflow.errors import AccountExistsError, StorageError

logger = logging.getLogger(__name__)

Number = Union[int, float]


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_number(value: Number) -> Number:
    """Report integral floats as ints so ``500`` reads back as ``500``."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


class StorageBackend(Protocol):
    """Operations every persistence backend provides."""

    kind: str

    def create_account(self, record: "AccountRecord") -> None:
        """Insert a new account; raise AccountExistsError if the name is taken."""
        ...

    def get_account(self, username: str) -> Optional["AccountRecord"]:
        ...

    def list_logs(self, username: str) -> list["LogRecord"]:
        ...

    def upsert_log(
        self, username: str, date: str, activity_type: str, value: Number
    ) -> None:
        ...

    def get_meta(self, username: str) -> Optional[dict]:
        ...

    def set_meta(self, username: str, data: dict) -> None:
        ...

    def ping(self) -> bool:
        ...


@dataclass
class AccountRecord:
    username: str
    password_hash: str
    created_at: int = field(default_factory=now_ms)

    def as_dict(self) -> dict:
        return {
            "username": self.username,
            "passwordHash": self.password_hash,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, username: str, data: dict) -> "AccountRecord":
        return cls(
            username=username,
            password_hash=data["passwordHash"],
            created_at=data.get("createdAt", 0),
        )


@dataclass
class LogRecord:
    username: str
    date: str
    activity_type: str
    value: Number = 0

    def as_dict(self) -> dict:
        return {
            "date": self.date,
            "type": self.activity_type,
            "value": normalize_number(self.value),
        }


class DatabaseBackend:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for tests).

    Each entity lives in its own table. Username uniqueness and the log key
    are enforced by primary-key constraints, and log/meta writes are single
    upsert statements, so no application-level locking is needed.

    Log values are stored as double precision, so integers are exact only up
    to 2**53; larger ones read back rounded (the file backend keeps them
    exact). Step counts and scores stay far below that.
    """

    kind = "database"

    def __init__(self, database_url: str, connect_timeout: Optional[int] = None):
        if not database_url:
            raise ValueError("DATABASE_URL is required for DatabaseBackend")
        url = make_url(database_url)
        engine_kwargs: dict = {
            "future": True,
            "pool_pre_ping": True,
            "pool_recycle": 1800,
        }
        backend_name = url.get_backend_name()
        if backend_name == "sqlite":
            engine_kwargs.pop("pool_recycle")
            if url.database in (None, "", ":memory:"):
                # One shared connection, otherwise every thread sees its own
                # empty in-memory database.
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
        elif connect_timeout and backend_name in ("postgresql", "mysql", "mariadb"):
            engine_kwargs["connect_args"] = {"connect_timeout": connect_timeout}

        self.engine = create_engine(url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Database %s failed: %s", operation, exc)
            raise StorageError(f"database {operation} failed: {exc}", operation) from exc
        finally:
            session.close()

    def _upsert(
        self,
        session: Session,
        model,
        values: dict,
        key_columns: list[str],
        update_columns: list[str],
    ) -> None:
        dialect = self.engine.dialect.name
        table = model.__table__
        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(table).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=key_columns,
                set_={name: stmt.excluded[name] for name in update_columns},
            )
        elif dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(table).values(**values)
            stmt = stmt.on_duplicate_key_update(
                {name: stmt.inserted[name] for name in update_columns}
            )
        else:
            raise StorageError(f"upsert is not supported on {dialect}", "upsert")
        session.execute(stmt)
        session.commit()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.error("Database ping failed: %s", exc)
            return False

    def create_account(self, record: AccountRecord) -> None:
        with self._session("create_account") as session:
            session.add(
                AccountRow(
                    username=record.username,
                    password_hash=record.password_hash,
                    created_at=record.created_at,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise AccountExistsError(record.username) from None

    def get_account(self, username: str) -> Optional[AccountRecord]:
        with self._session("get_account") as session:
            row = session.get(AccountRow, username)
            if not row:
                return None
            return AccountRecord(
                username=row.username,
                password_hash=row.password_hash,
                created_at=row.created_at,
            )

    def list_logs(self, username: str) -> list[LogRecord]:
        with self._session("list_logs") as session:
            rows = session.execute(
                select(ActivityLogRow).where(ActivityLogRow.username == username)
            ).scalars()
            return [
                LogRecord(
                    username=row.username,
                    date=row.date,
                    activity_type=row.activity_type,
                    value=row.value,
                )
                for row in rows
            ]

    def upsert_log(
        self, username: str, date: str, activity_type: str, value: Number
    ) -> None:
        with self._session("upsert_log") as session:
            self._upsert(
                session,
                ActivityLogRow,
                {
                    "username": username,
                    "date": date,
                    "activity_type": activity_type,
                    "value": value,
                },
                key_columns=["username", "date", "activity_type"],
                update_columns=["value"],
            )

    def get_meta(self, username: str) -> Optional[dict]:
        with self._session("get_meta") as session:
            row = session.get(UserMetaRow, username)
            return row.data if row else None

    def set_meta(self, username: str, data: dict) -> None:
        with self._session("set_meta") as session:
            self._upsert(
                session,
                UserMetaRow,
                {"username": username, "data": data},
                key_columns=["username"],
                update_columns=["data"],
            )


Base = declarative_base()


class AccountRow(Base):
    __tablename__ = "accounts"

    username = Column(String, primary_key=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(BigInteger, nullable=False)


class ActivityLogRow(Base):
    __tablename__ = "activity_logs"

    username = Column(String, primary_key=True)
    date = Column(String, primary_key=True)
    activity_type = Column(String, primary_key=True)
    value = Column(Float, nullable=False, default=0.0)


class UserMetaRow(Base):
    __tablename__ = "user_meta"

    username = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
