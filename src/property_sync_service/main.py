"""
Main application entry point for the Property Sync Service.
"""

import asyncio
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from property_sync_service import __version__
from property_sync_service.config import settings
from property_sync_service.db import AsyncSessionLocal, engine, init_models
from property_sync_service.exceptions import SourceApiError, SyncAlreadyRunningError
from property_sync_service.routers.health_router import router as health_router
from property_sync_service.routers.sync_router import router as sync_router
from property_sync_service.utils.logging_config import (
    RequestIdMiddleware,
    configure_logging,
    logger,
)
from property_sync_service.utils.rate_limiting import limiter

# Configure logging using our custom configuration
configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle manager.

    Creates missing tables, opens the shared HTTP client and, on shutdown,
    cancels background runs before releasing the client and the engine.
    """
    logger.info("Application startup sequence initiated.")
    await init_models(engine)

    app.state.session_factory = AsyncSessionLocal
    app.state.http_client = httpx.AsyncClient(
        timeout=settings.SOURCE_API_TIMEOUT_SECONDS, follow_redirects=True
    )
    app.state.sync_tasks = {}

    # Initialize startup timestamp for health checks
    app.state.startup_time = time.time()
    logger.info("Application startup complete.")

    yield

    logger.info("Application shutdown sequence initiated.")
    tasks = list(app.state.sync_tasks.values())
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    await app.state.http_client.aclose()
    await engine.dispose()
    logger.info("Application shutdown complete.")


# Initialize FastAPI app with lifespan
app = FastAPI(
    title="Property Sync Service",
    description=(
        "Service that synchronizes real-estate listings from a third-party API "
        "into a local database, keeping images, change history and run logs."
    ),
    version=__version__,
    root_path=settings.ROOT_PATH,
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)


# Add rate limiter middleware
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(sync_router, tags=["Synchronization"])


# Add exception handlers
@app.exception_handler(SyncAlreadyRunningError)
async def sync_running_exception_handler(request: Request, exc: SyncAlreadyRunningError):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "error_type": "SyncAlreadyRunning",
            "execution_id": exc.execution_id,
            "started_at": exc.started_at.isoformat() if exc.started_at else None,
        },
    )


@app.exception_handler(SourceApiError)
async def source_api_exception_handler(request: Request, exc: SourceApiError):
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "error_type": "SourceApiError"},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler for consistent error responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_type": "HTTPException"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Validation exception handler for consistent error responses."""
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "error_type": "ValidationError"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Global exception handler for consistent error responses."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_type": str(type(exc).__name__),
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "property_sync_service.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development(),
        log_level=settings.LOGGING_LEVEL.lower(),
    )
