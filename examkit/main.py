"""
ExamKit - FastAPI Application Factory
Clean Architecture with dependency injection
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import make_asgi_app
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from examkit.core.config import Settings, get_settings
from examkit.core.logging import setup_logging
from examkit.infrastructure.cache import CacheManager
from examkit.infrastructure.database import DatabaseManager
from examkit.interfaces.api.v1 import api_router
from examkit.interfaces.middleware.error_handler import ErrorHandlerMiddleware
from examkit.interfaces.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger(__name__)


def create_limiter(settings: Settings) -> Limiter:
    """Create rate limiter, backed by Redis unless another storage is set."""
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
        storage_uri=settings.rate_limit_storage_uri or settings.redis_url,
        strategy="fixed-window",
        enabled=settings.rate_limit_enabled,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    settings: Settings = app.state.settings

    setup_logging(settings.log_level, settings.log_format)

    logger.info(
        "Starting ExamKit",
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize database connection pool
    db_manager = DatabaseManager(settings)
    await db_manager.connect()
    if settings.is_sqlite:
        # Local databases skip Alembic
        await db_manager.create_schema()
    app.state.db = db_manager

    # Initialize cache connection
    cache_manager = None
    if settings.cache_enabled:
        cache_manager = CacheManager(settings)
        await cache_manager.connect()
    app.state.cache = cache_manager

    logger.info("All services initialized successfully")

    yield

    logger.info("Shutting down ExamKit")

    if cache_manager is not None:
        await cache_manager.disconnect()
    await db_manager.disconnect()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Application factory pattern for FastAPI.

    Args:
        settings: Optional settings override for testing

    Returns:
        Configured FastAPI application instance
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="ExamKit",
        description="Online test authoring, moderation and evaluation",
        version=settings.app_version,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Store settings in app state
    app.state.settings = settings

    # Setup rate limiter
    limiter = create_limiter(settings)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Add middleware (order matters - last added is first executed)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(ErrorHandlerMiddleware)

    # Security headers and request id (wraps the error handler so error
    # bodies carry the request id)
    app.add_middleware(SecurityHeadersMiddleware, settings=settings)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # Mount Prometheus metrics
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    return app


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "examkit.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
    )
