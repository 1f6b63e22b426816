"""
Backend selection and dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError

from zenflow.auth import Authenticator, TokenSigner
from zenflow.config import DEFAULT_TOKEN_SECRET, Settings
from zenflow.db import DatabaseBackend, StorageBackend
from zenflow.errors import Unauthorized
from zenflow.file_store import FileBackend
from zenflow.stores import ActivityLogStore, MetadataStore

logger = logging.getLogger(__name__)


def select_backend(settings: Settings) -> StorageBackend:
    """
    Pick the storage backend once for the process lifetime.

    One bounded attempt is made against ``database_url``. Any failure, or no
    URL at all, falls back permanently to the JSON file backend. Failing to
    create that file raises StartupError.
    """
    if settings.database_url:
        try:
            backend = DatabaseBackend(
                settings.database_url,
                connect_timeout=settings.database_connect_timeout_seconds,
            )
        except (SQLAlchemyError, ImportError, OSError, ValueError) as exc:
            logger.warning(
                "Database connection failed, falling back to file storage: %s",
                exc,
                extra={"backend": FileBackend.kind},
            )
        else:
            logger.info("Connected to database", extra={"backend": backend.kind})
            return backend
    else:
        logger.info("No DATABASE_URL configured, using file storage")

    file_backend = FileBackend(settings.data_file)
    file_backend.ensure_file()
    logger.info(
        "Using file storage at %s", settings.data_file, extra={"backend": "file"}
    )
    return file_backend


@dataclass
class Services:
    """Everything a request handler needs, bound to one backend."""

    backend: StorageBackend
    authenticator: Authenticator
    logs: ActivityLogStore
    meta: MetadataStore

    @classmethod
    def build(
        cls,
        backend: StorageBackend,
        settings: Settings,
    ) -> "Services":
        if settings.token_secret == DEFAULT_TOKEN_SECRET:
            logger.warning("Using the default development token secret")
        signer = TokenSigner(
            settings.token_secret, ttl=timedelta(days=settings.token_ttl_days)
        )
        return cls(
            backend=backend,
            authenticator=Authenticator(
                backend, signer, hash_method=settings.password_hash_method
            ),
            logs=ActivityLogStore(backend),
            meta=MetadataStore(backend),
        )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Storage backend not initialized")
    return services


def get_authenticator(services: Services = Depends(get_services)) -> Authenticator:
    return services.authenticator


def get_log_store(services: Services = Depends(get_services)) -> ActivityLogStore:
    return services.logs


def get_meta_store(services: Services = Depends(get_services)) -> MetadataStore:
    return services.meta


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> str:
    """Resolve the bearer token in ``Authorization`` to a username."""
    if not authorization:
        raise Unauthorized("missing auth")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("bad auth")
    return authenticator.verify_token(parts[1])
