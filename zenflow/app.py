"""
FastAPI application entry point for the Zenflow backend.

Run with ``uvicorn zenflow.app:app``. The storage backend is chosen once at
startup (see ``dependencies.select_backend``) unless one is passed to
``create_app`` directly, as the tests do.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from zenflow.config import Settings, get_settings
from zenflow.db import StorageBackend
from zenflow.dependencies import Services, select_backend
from zenflow.errors import GENERIC_INTERNAL_MESSAGE, ZenflowError
from zenflow.observability import setup_logging
from zenflow.routes import router

logger = logging.getLogger(__name__)


class SPAStaticFiles(StaticFiles):
    """Serve the built frontend; unknown non-API paths get ``index.html``
    so client-side routes survive a reload."""

    def __init__(self, *args, api_prefix: str = "/api", **kwargs):
        super().__init__(*args, **kwargs)
        self.api_prefix = api_prefix.strip("/")

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            is_api = self.api_prefix and (
                path == self.api_prefix or path.startswith(self.api_prefix + "/")
            )
            if exc.status_code != 404 or is_api:
                raise
            return await super().get_response("index.html", scope)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ZenflowError)
    async def zenflow_error_handler(request: Request, exc: ZenflowError):
        if exc.http_status >= 500:
            logger.error(
                "%s: %s",
                exc.code,
                exc.message,
                exc_info=exc.__cause__ is not None,
                extra={
                    "error_code": exc.code,
                    "operation": getattr(exc, "operation", None),
                    "path": request.url.path,
                },
            )
        else:
            logger.info(
                "%s on %s: %s",
                exc.code,
                request.url.path,
                exc.message,
                extra={"error_code": exc.code},
            )
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "invalid request body"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s: %s",
            request.url.path,
            exc,
            exc_info=True,
            extra={"path": request.url.path},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": GENERIC_INTERNAL_MESSAGE},
        )


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[StorageBackend] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format)
        if getattr(app.state, "services", None) is None:
            app.state.services = Services.build(select_backend(settings), settings)
        logger.info(
            "Zenflow backend started",
            extra={"backend": app.state.services.backend.kind},
        )
        yield
        logger.info("Zenflow backend shutting down")

    app = FastAPI(title="Zenflow Backend", version="0.1.0", lifespan=lifespan)
    if backend is not None:
        app.state.services = Services.build(backend, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix=settings.api_prefix)
    _install_error_handlers(app)

    # Mounted after the API router so API paths take precedence.
    if settings.static_dir and os.path.isdir(settings.static_dir):
        app.mount(
            "/",
            SPAStaticFiles(
                directory=settings.static_dir,
                html=True,
                api_prefix=settings.api_prefix,
            ),
            name="static",
        )
    return app


app = create_app()
