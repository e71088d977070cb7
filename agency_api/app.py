"""
FastAPI application entry point for the agency API.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agency_api.auth import ADMIN_SECRET_HEADER
from agency_api.config import Settings, get_settings, validate_environment
from agency_api.db import Database
from agency_api.dependencies import build_database, build_identity_provider
from agency_api.errors import ApiError
from agency_api.identity import IdentityProvider
from agency_api.models import utcnow
from agency_api.routes import router

logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    content = {"success": False, "message": message}
    if error:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s (%s)",
            request.method,
            request.url.path,
            exc.message,
            exc.detail,
        )
    return _envelope(exc.status_code, exc.message, exc.detail)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return _envelope(exc.status_code, str(exc.detail))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    logger.warning("Validation error on %s: %s", request.url.path, errors)
    return _envelope(400, "Invalid request", "; ".join(errors))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc
    )
    return _envelope(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    identity: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Build the application. Backends passed in are used as-is and left open;
    missing ones are built at startup and closed at shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned: Optional[Database] = None
        if app.state.database is None or app.state.identity is None:
            validate_environment(settings)
        if app.state.database is None:
            owned = app.state.database = build_database(settings)
        if app.state.identity is None:
            app.state.identity = build_identity_provider(settings)
        logger.info("Agency API started (prefix=%s)", settings.api_prefix)
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                app.state.database = None
            logger.info("Agency API stopped")

    app = FastAPI(title="Agency API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.identity = identity

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", ADMIN_SECRET_HEADER],
        expose_headers=["Set-Cookie"],
    )

    @app.middleware("http")
    async def cross_origin_policy_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin-allow-popups"
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        return response

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get(f"{settings.api_prefix}/health")
    def health():
        return {"status": "ok", "timestamp": utcnow().isoformat()}

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
