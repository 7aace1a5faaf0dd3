"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from loc3w.api.v1.router import api_router
from loc3w.config import settings
from loc3w.core.background_tasks import (
    run_wallet_reconciliation,
    start_reconciliation_scheduler,
    stop_reconciliation_scheduler,
)
from loc3w.core.change_feed import new_feed
from loc3w.core.exceptions import AppException
from loc3w.core.middleware import RequestLoggingMiddleware
from loc3w.database import close_db, init_db

logger = logging.getLogger(__name__)

# Background task handles
_reconciliation_task: asyncio.Task | None = None
_startup_reconciliation_task: asyncio.Task | None = None


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    global _reconciliation_task, _startup_reconciliation_task

    # Startup
    if settings.debug:
        await init_db()

    app.state.change_feed = new_feed(settings.change_feed_backend, settings.redis_url)

    # Startup reconciliation (non-blocking)
    _startup_reconciliation_task = asyncio.create_task(run_wallet_reconciliation(trigger="startup"))

    # Periodic reconciliation
    _reconciliation_task = asyncio.create_task(start_reconciliation_scheduler())

    yield

    # Shutdown
    stop_reconciliation_scheduler()
    for task in (_reconciliation_task, _startup_reconciliation_task):
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    await app.state.change_feed.close()
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="3W-LOC - Equipment Rental API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle custom application exceptions."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers,
        )

    # Middleware (order matters - first added = last executed)
    # 1. Request logging (outermost)
    app.add_middleware(RequestLoggingMiddleware)

    # 2. CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 3. Gzip compression (innermost)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Include API routes
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get("/")
    async def root() -> dict:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "loc3w.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
