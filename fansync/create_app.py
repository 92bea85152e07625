"""
FastAPI application factory - Fanvue CRM sync API
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from fastapi_async_sqlalchemy import SQLAlchemyMiddleware

from fansync.api.middlewares.auto_commit import AutoCommitMiddleware
from fansync.api.routes import api_router
from fansync.container import ApplicationContainer
from fansync.db import ENGINE_ARGS, SESSION_ARGS
from fansync.environment import EnvironmentName
from fansync.exceptions import BaseError, ErrorType
from settings import settings

logger = logging.getLogger(__name__)

TITLE = "Fansync API"
DESCRIPTION = "Fanvue inbox sync, analytics and messaging API"
VERSION = "1.0.0"


def _setup_error_handlers(app: FastAPI) -> None:
    """Setup FastAPI exception handlers."""

    @app.exception_handler(HTTPException)
    async def handle_http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code or 400, content={"error": exc.detail})

    @app.exception_handler(BaseError)
    async def handle_app_error(request: Request, exc: BaseError) -> JSONResponse:
        if exc.status_code >= 400 and exc.status_code < 500:
            logger.warning(f"A user-related (HTTP 4xx) error occurred; {exc}", exc_info=True, extra=exc.extra)
        else:
            logger.exception(f"An unhandled app exception occurred; {exc}", extra=exc.extra)

        return JSONResponse(
            status_code=exc.status_code, content={"error": exc.error_type.value, "error_description": exc.message}
        )

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception) -> JSONResponse:
        if settings.environment == EnvironmentName.TESTING:
            logging.exception(f"An unhandled exception occurred; error: {exc}")
        logger.exception(f"An unhandled exception occurred; error: {exc}")

        return JSONResponse(status_code=500, content={"error": ErrorType.UNHANDLED_EXCEPTION.value})


def _bearer_openapi(app: FastAPI) -> dict[str, Any]:
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(title=TITLE, version=VERSION, description=DESCRIPTION, routes=app.routes)
    openapi_schema["components"]["securitySchemes"] = {
        "BearerAuth": {"type": "http", "scheme": "bearer", "description": "Organization API key"}
    }

    # Health and webhook deliveries are unauthenticated
    for path, methods in openapi_schema["paths"].items():
        if path == "/health" or path.startswith("/v1/webhooks"):
            continue
        for method in methods:
            if method in ["get", "post", "put", "delete", "patch"]:
                methods[method]["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


def create_app(container: ApplicationContainer | None = None) -> FastAPI:
    """Create and configure FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if container is not None:
            await container.controllers.outbox().close()
            await container.controllers.http().close()

    app = FastAPI(title=TITLE, description=DESCRIPTION, version=VERSION, lifespan=lifespan)
    setattr(app, "openapi", lambda: _bearer_openapi(app))

    _setup_error_handlers(app)

    # Added first so it runs after the SQLAlchemy middleware created the session
    app.add_middleware(AutoCommitMiddleware)
    app.add_middleware(
        SQLAlchemyMiddleware, db_url=settings.database.url, engine_args=ENGINE_ARGS, session_args=SESSION_ARGS
    )

    app.include_router(api_router, prefix="/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app
