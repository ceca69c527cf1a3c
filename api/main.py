"""
Main FastAPI application for the Sales Room qualification service.
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from common.errors import AppError, ValidationError, GENERIC_MESSAGE, get_user_friendly_message, log_error
from common.logging_config import configure_logging
from .routes import analytics, chat, debug, handoff, transcripts
from .services import get_services, initialize_services
from .middleware.rate_limit import RateLimitMiddleware
from config.settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    initialize_services()
    settings = get_services().settings
    configure_logging(settings.log_level)
    logger.info(f"{settings.brand_name} Sales Room ready")
    yield
    logger.info(f"{settings.brand_name} Sales Room shutting down...")


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if not isinstance(exc, ValidationError):
        log_error(exc, {"path": request.url.path})

    body = exc.to_dict()
    body["user_message"] = get_user_friendly_message(exc)
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field

    # Upstream failures surface as a bad gateway, whatever the backend said
    status_code = exc.status_code or 500
    if exc.code == "CHAT_SERVICE_ERROR":
        status_code = 502
    return JSONResponse(status_code=status_code, content=body)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error(exc, {"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={
            "code": "INTERNAL_ERROR",
            "message": GENERIC_MESSAGE,
            "error_id": str(int(time.time() * 1000)),
            "actions": ["reload", "home", "report"],
        },
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    initialize_services()
    services = get_services()
    settings = services.settings

    app = FastAPI(
        title=settings.api_title,
        description="Sales qualification chat: lead scoring, Slack alerts, transcripts and CRM routing.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting middleware
    app.add_middleware(RateLimitMiddleware, limiter=services.rate_limiter)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # --- Core routers ---
    app.include_router(chat.router, prefix="/api/v1", tags=["Chat"])
    app.include_router(transcripts.router, prefix="/api/v1", tags=["Transcripts"])
    app.include_router(analytics.router, prefix="/api/v1", tags=["Analytics"])
    app.include_router(handoff.router, prefix="/api/v1", tags=["Handoff"])

    # --- Debug ---
    if settings.debug_api_enabled:
        app.include_router(debug.router, prefix="/api/v1/debug", tags=["Debug"])
        logger.warning("Debug API enabled")

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": f"{settings.brand_name} Sales Room",
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health():
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
