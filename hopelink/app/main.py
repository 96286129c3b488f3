"""
FastAPI Application Entry Point.

This is the main application file for the HopeLink Workflow Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from hopelink.app.core.config import settings
from hopelink.app.api.v1.router import router as api_v1_router
from hopelink.app.core.observability import ObservabilityMiddleware, configure_logging
from hopelink.app.core.redis_client import ping_redis
from hopelink.app.db.session import init_models
from hopelink.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from hopelink.app.models.user import User
from hopelink.app.models.donation import Donation
from hopelink.app.models.donation_request import DonationRequest
from hopelink.app.models.delivery import Delivery
from hopelink.app.models.audit_log import AuditLog
from hopelink.app.models.notification import Notification

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    await init_models()
    logger.info("%s %s started", settings.app_name, settings.api_version)
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Workflow status backend for the HopeLink donation network",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Redis is reported but does not fail the check: status writes still
    commit when the change feed is down.
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if redis_ok else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to HopeLink Workflow Backend API",
        "docs": "/docs",
        "health": "/health",
    }
