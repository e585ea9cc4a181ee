"""
FastAPI Production Application

Main entry point for the Admin Panel Metrics API.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import structlog

from admin_panel.config import Settings, get_settings
from admin_panel.config.logging import configure_logging
from admin_panel.database import close_databases, init_databases
from admin_panel.serving.api.errors import register_exception_handlers
from admin_panel.serving.api.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from admin_panel.serving.api.routes import (
    dashboard_router,
    health_router,
    users_router,
)
from admin_panel.serving.cache import CacheUnavailableError, close_redis, init_redis

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    settings = get_settings()
    logger.info("Starting Admin Panel Metrics API", environment=settings.app_env)

    await init_databases(settings)

    # Redis only backs the dashboard cache; run without it if unreachable
    try:
        await init_redis(settings)
    except CacheUnavailableError as e:
        logger.warning("Redis init failed, dashboard cache disabled", error=str(e))

    yield

    logger.info("Shutting down...")
    await close_databases()
    await close_redis()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Admin Panel Metrics API",
        description="User metrics reconciled across the orders and payments stores",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["Dashboard"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
