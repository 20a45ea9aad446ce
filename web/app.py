"""
FastAPI application for property verification and contact disclosure.

Production deployment configuration via environment variables.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.errors import MarketplaceError, RateLimitError
from web.admin_routes import router as admin_router
from web.contact_routes import router as contact_router
from web.property_routes import router as property_router
from web.registry_routes import router as registry_router
from web.services import Services, get_services

logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("RAILWAY_ENVIRONMENT") is not None or os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


# =============================================================================
# Error Responses
# =============================================================================


def marketplace_error_response(exc: MarketplaceError) -> JSONResponse:
    """JSON body and status for a domain error."""
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)


def _field_errors(exc: RequestValidationError) -> dict[str, str]:
    errors = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(loc) or "request"] = error.get("msg", "Invalid value")
    return errors


def register_error_handlers(app: FastAPI) -> None:
    """Render every error in the same ``{success, message, error_code, details}`` shape."""

    @app.exception_handler(MarketplaceError)
    async def handle_marketplace_error(request: Request, exc: MarketplaceError):
        if exc.http_status >= 500:
            logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.message)
        return marketplace_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": "Request data is invalid",
                "error_code": "VALIDATION_FAILED",
                "details": {"field_errors": _field_errors(exc)},
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "message": str(exc.detail),
                "error_code": "UNAUTHORIZED" if exc.status_code == 401 else "HTTP_ERROR",
                "details": {},
            },
            headers=getattr(exc, "headers", None),
        )


# =============================================================================
# Background Sweep
# =============================================================================


async def run_periodic_sweep(services: Services) -> None:
    """Purge expired codes and stale activity on the configured interval."""
    interval = services.config.sweep_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            services.run_sweep()
        except Exception:
            logger.exception("Retention sweep failed")


# =============================================================================
# Application Factory
# =============================================================================


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Service container (built from the environment when None)
    """
    app = FastAPI(
        title="Property Verification Service",
        description="Listing verification and OTP-gated owner contact disclosure",
        version="0.1.0",
        # Production settings: disable docs/redoc for private deployment
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
    )

    # ==========================================================================
    # Healthcheck endpoints are registered FIRST, before any middleware
    # or services that could fail. They perform NO IO.
    # ==========================================================================
    @app.get("/", include_in_schema=False)
    def root():
        """Root healthcheck. No dependencies, no IO."""
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        """Secondary health endpoint. No dependencies, no IO."""
        return {"status": "healthy"}

    # CORS middleware - locked down for production
    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE"],
            allow_headers=["*"],
        )

    app.state.services = services or get_services()
    register_error_handlers(app)

    app.include_router(property_router)
    app.include_router(admin_router)
    app.include_router(contact_router)
    app.include_router(registry_router)

    # ==========================================================================
    # Startup/shutdown: retention sweep runs in the background
    # ==========================================================================
    @app.on_event("startup")
    async def on_startup():
        app.state.sweep_task = asyncio.create_task(run_periodic_sweep(app.state.services))
        logger.info(
            "Property verification service started (mode=%s)",
            app.state.services.settings.get_verification_mode().value,
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        task = getattr(app.state, "sweep_task", None)
        if task is not None:
            task.cancel()

    return app


app = create_app()
