"""
Platform Billing Service - FastAPI Application

Main entry point for the backend API.
Provides the scheduled billing jobs and subscription self-service endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.exceptions import (
    BillingServiceError,
    IntegrityViolationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Billing service starting in {settings.environment} mode...")

    if settings.database_url or settings.supabase_password:
        try:
            from app.infrastructure.db.database import init_db
            await init_db()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")

    yield

    if settings.database_url or settings.supabase_password:
        try:
            from app.infrastructure.db.database import close_db
            await close_db()
            logger.info("Database connection pool closed")
        except Exception as e:
            logger.warning(f"Database shutdown error: {e}")

    logger.info("Billing service shutting down...")


app = FastAPI(
    title="Platform Billing Service",
    description="Subscription lifecycle and billing-date reconciliation",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# Wildcard origins cannot be combined with credentials
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials="*" not in settings.allowed_origins,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-cron-secret"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(InvalidTransitionError)
@app.exception_handler(IntegrityViolationError)
async def conflict_error_handler(request: Request, exc: BillingServiceError):
    """Handle state conflicts (disallowed transitions, corrupted rows)."""
    logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=409,
        content=exc.to_dict(),
    )


@app.exception_handler(BillingServiceError)
async def general_error_handler(request: Request, exc: BillingServiceError):
    """Handle all other application errors."""
    logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "platform-billing"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Platform Billing API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import jobs, subscriptions

app.include_router(jobs.router, prefix="/api", tags=["Billing Jobs"])
app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
