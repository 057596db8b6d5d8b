"""
FastAPI application entry point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from escrow_core.infrastructure.settings import get_settings
from escrow_core.infrastructure.logging_config import setup_logging
from escrow_core.api.exceptions import (
    escrow_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    operational_error_handler,
    general_exception_handler,
)
from escrow_core.api.public.health import router as health_router
from escrow_core.api.public.metrics import router as metrics_router
from escrow_core.api.v1 import router as api_v1_router
from escrow_core.services.errors import EscrowError
from escrow_core.utils.trace_id import TraceIDMiddleware
from escrow_core.utils.request_logging import RequestLoggingMiddleware
from escrow_core.workers.scheduler import ReleaseScheduler

# Get settings
settings = get_settings()

# Setup logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the in-process release sweep when enabled, stop it on shutdown"""
    scheduler = None
    if settings.RELEASE_SWEEP_ENABLED and not settings.is_test:
        scheduler = ReleaseScheduler()
        scheduler.start()
    app.state.release_scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown()


# Create FastAPI app
app = FastAPI(
    title="Escrow Core API",
    description="Escrow transactions, QR delivery confirmation and ledger",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

if settings.CORS_ENABLED:
    cors_origins = settings.cors_allow_origins_list
    if not cors_origins:
        logger.warning(
            "CORS_ENABLED=True but CORS_ALLOW_ORIGINS is empty or not set. "
            "Set CORS_ALLOW_ORIGINS (comma-separated) to allow browser clients."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=settings.cors_allow_methods_list or ["*"],
        allow_headers=settings.cors_allow_headers_list or ["*"],
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    )

# Last added is outermost: the trace id must be set before the request is logged
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TraceIDMiddleware)

# Register exception handlers
app.add_exception_handler(EscrowError, escrow_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(OperationalError, operational_error_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(api_v1_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Escrow Core API",
        "version": "1.0.0",
        "status": "running",
    }
