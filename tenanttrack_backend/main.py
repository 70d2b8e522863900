"""TenantTrack Backend - Main Application Entry Point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .core.exceptions import TenantTrackException
from .core.logging import (
    RequestIdMiddleware,
    get_logger,
    setup_logging,
    shutdown_logging,
)
from .modules.access_control.routers import router as access_router
from .modules.lease_management.routers import router as leases_router
from .modules.maintenance.routers import router as maintenance_router
from .modules.notifications.dependencies import get_email_client
from .modules.notifications.routers import router as notifications_router
from .modules.payments.routers import router as payments_router
from .tasks import BackgroundTasks

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging(
        log_to_file=settings.log_to_file,
        log_level=settings.log_level,
        log_file_path=settings.log_file_path,
        use_json_format=settings.log_format == "json",
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
    )
    logger.info("Starting TenantTrack application...")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Debug mode: {settings.app_debug}")

    background = None
    if settings.background_tasks_enabled:
        background = BackgroundTasks(email_client=get_email_client())
        background.start()
        logger.info("Background tasks started")

    yield

    # Shutdown
    logger.info("Shutting down TenantTrack application...")
    if background is not None:
        await background.stop()
    shutdown_logging()


# Create FastAPI application
app = FastAPI(
    title=settings.api_title,
    description="Tenancy lifecycle and payment reconciliation for rental properties",
    version=settings.api_version,
    docs_url=f"{settings.api_prefix}/docs" if settings.app_debug else None,
    redoc_url=f"{settings.api_prefix}/redoc" if settings.app_debug else None,
    openapi_url=f"{settings.api_prefix}/openapi.json" if settings.app_debug else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID middleware for request tracing
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(TenantTrackException)
async def tenanttrack_exception_handler(request: Request, exc: TenantTrackException):
    """Render domain errors with their status code and error code."""
    if exc.status_code >= 500:
        logger.error(
            exc.message, extra={"code": exc.code, "path": request.url.path}
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.message,
            "error": exc.details or exc.message,
            "code": exc.code,
            "data": None,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "error": str(exc) if settings.app_debug else "Internal server error",
            "code": "INTERNAL_ERROR",
            "data": None,
        },
    )


# Health check endpoint
@app.get(f"{settings.api_prefix}/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.api_version,
        "env": settings.app_env,
    }


app.include_router(access_router, prefix=settings.api_prefix)
app.include_router(leases_router, prefix=settings.api_prefix)
app.include_router(payments_router, prefix=settings.api_prefix)
app.include_router(maintenance_router, prefix=settings.api_prefix)
app.include_router(notifications_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tenanttrack_backend.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_debug,
    )
