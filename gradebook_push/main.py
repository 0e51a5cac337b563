"""
FastAPI application entry point.
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gradebook_push.db import close_db, init_db
from gradebook_push.errors import ConfigurationError, PushError
from gradebook_push.logging_config import setup_logging
from gradebook_push.routers import push
from gradebook_push.services.push import PushNotificationService
from gradebook_push.services.vapid import try_load_vapid_config
from gradebook_push.settings import settings

logger = logging.getLogger(__name__)


def build_push_service() -> PushNotificationService:
    """Validate VAPID credentials once and build the shared service."""
    config = None
    if settings.push_credentials_present:
        config = try_load_vapid_config(settings)
    else:
        logger.warning("VAPID_EMAIL, VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY are not all set")
    return PushNotificationService(config, default_ttl=settings.push_default_ttl)


def create_app(
    push_service: PushNotificationService | None = None,
    init_database: bool = True,
) -> FastAPI:
    """Create the application.

    Tests pass their own push service and skip database initialisation.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s...", settings.app_name)
        if init_database:
            await init_db()
        if getattr(app.state, "push_service", None) is None:
            app.state.push_service = build_push_service()
        yield
        logger.info("Shutting down %s...", settings.app_name)
        if init_database:
            await close_db()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.push_service = push_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID to all requests for logging."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health", tags=["health"])
    async def health(request: Request):
        """Health check endpoint for load balancers."""
        service = request.app.state.push_service
        return {"status": "healthy", "push_configured": bool(service and service.configured)}

    app.include_router(push.router)

    @app.exception_handler(PushError)
    async def push_error_handler(request: Request, exc: PushError):
        if isinstance(exc, ConfigurationError):
            logger.error("Push request rejected, not configured: %s %s", request.method, request.url.path)
        return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected malformed request body on %s: %s", request.url.path, exc.errors())
        return JSONResponse({"success": False, "error": "Invalid request body"}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            {"success": False, "error": exc.detail},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)

    return app


setup_logging(settings.log_level, settings.log_format)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gradebook_push.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
