"""
Ultra Roadmap Sync - FastAPI Application
========================================

Main application factory with all routers and middleware.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roadmap_sync.api import roadmaps, users
from roadmap_sync.api.middleware import BodySizeLimitMiddleware, error_response
from roadmap_sync.core.config import settings
from roadmap_sync.core.database import AsyncSessionLocal, close_db, init_db
from roadmap_sync.core.exceptions import AppException
from roadmap_sync.core.roadmap import create_roadmap_service
from roadmap_sync.core.schemas import HealthResponse

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


# ==========================================================================
# Lifespan
# ==========================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Startup:
    - Create tables
    - Build the roadmap pipeline once for the process

    Shutdown:
    - Close outbound HTTP clients
    - Close database connections
    """
    logger.info("Starting Ultra Roadmap Sync", version=settings.APP_VERSION)

    await init_db()
    logger.info("Database initialized")

    app.state.roadmap_service = create_roadmap_service(AsyncSessionLocal, settings)
    if not settings.SERVICE_ROLE_KEY:
        logger.warning("SERVICE_ROLE_KEY not set; roadmap operations will fail")
    if not settings.expected_api_key:
        logger.warning("X_API_KEY / API_KEY not set; authenticated requests will fail")

    yield

    logger.info("Shutting down Ultra Roadmap Sync")
    await app.state.roadmap_service.close()
    await close_db()
    logger.info("Database connections closed")


# ==========================================================================
# App Factory
# ==========================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Roadmap ingestion and synchronization for coaching cycles",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # ==========================================================================
    # Middleware
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(BodySizeLimitMiddleware)

    # ==========================================================================
    # Exception Handlers
    # ==========================================================================

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Render domain errors with their status."""
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "request_failed",
            code=exc.code,
            error=exc.message,
            path=request.url.path,
            status_code=exc.status_code,
        )
        return error_response(exc.status_code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Invalid request body",
            [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()],
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        if settings.is_development:
            details = str(exc)
        else:
            details = "An unexpected error occurred"

        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", details)

    # ==========================================================================
    # Routers
    # ==========================================================================

    @app.get(
        "/",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Liveness check",
    )
    async def root() -> HealthResponse:
        """Unauthenticated liveness probe."""
        return HealthResponse(
            status="ok",
            name=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
        )

    app.include_router(roadmaps.router)
    app.include_router(users.router)

    return app


# ==========================================================================
# Application Instance
# ==========================================================================

app = create_app()


# ==========================================================================
# Development Server
# ==========================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "roadmap_sync.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level="info",
    )
