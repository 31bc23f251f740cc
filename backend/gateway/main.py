"""
Completion gateway application.

FastAPI application with structured logging, error handling,
and request context middleware.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gateway.api import completions_router, health_router, models_router
from gateway.auth import USER_ID_HEADER
from gateway.config import get_settings
from gateway.core import (
    RequestContextMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from gateway.db import dispose_engine, verify_database_connection

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Startup
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting completion gateway",
        data={
            "environment": settings.environment,
            "debug": settings.debug,
            "cors_origins": settings.cors_origins_list,
        },
    )

    # Verify database connectivity (does NOT run migrations)
    if verify_database_connection():
        logger.info("Database connection verified")
    else:
        logger.warning(
            "Database connection failed - run 'alembic upgrade head' to initialize"
        )

    if not settings.encryption_key:
        logger.warning("ENCRYPTION_KEY is not set - stored API keys cannot be decrypted")

    _app.state.start_time = datetime.now(UTC)

    yield

    # Shutdown
    logger.info("Shutting down completion gateway")
    dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Completion Gateway",
        description="Multi-provider streaming completion gateway",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Setup exception handlers (must be before middleware)
    setup_exception_handlers(app)

    # Request context (inject request ID, log requests)
    app.add_middleware(RequestContextMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", USER_ID_HEADER, "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(models_router)
    app.include_router(completions_router)

    return app


# Create application instance
app = create_app()
