"""
Directory Billing - FastAPI Application

Main entry point for the billing and entitlement backend.
Provides webhook, checkout, listing, admin and scheduled-job endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from directory_billing.config.settings import settings
from directory_billing.infrastructure.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DirectoryBillingError,
    NotFoundError,
    ProviderUnreachableError,
    QuotaExceededError,
    SignatureInvalidError,
    StoreWriteFailedError,
    ValidationError,
)
from directory_billing.infrastructure.db.database import init_db, close_db

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Directory Billing backend starting in {settings.environment} mode...")

    try:
        await init_db()
    except (SQLAlchemyError, OSError) as e:
        raise ConfigurationError("Database unreachable at startup", original_error=e)
    logger.info("Database connection pool initialized")

    yield

    await close_db()
    logger.info("Directory Billing backend shutting down...")


app = FastAPI(
    title="Directory Billing",
    description="Entitlements, billing webhooks and reconciliation for the directory",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

def _error_response(status_code: int, exc: DirectoryBillingError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return _error_response(400, exc)


@app.exception_handler(SignatureInvalidError)
async def signature_error_handler(request: Request, exc: SignatureInvalidError):
    """Reject unsigned or tampered webhook deliveries."""
    logger.warning(f"Webhook signature verification failed: {exc.message}")
    return _error_response(400, exc)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return _error_response(403, exc)


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return _error_response(404, exc)


@app.exception_handler(QuotaExceededError)
async def quota_error_handler(request: Request, exc: QuotaExceededError):
    return _error_response(409, exc)


@app.exception_handler(StoreWriteFailedError)
async def store_write_error_handler(request: Request, exc: StoreWriteFailedError):
    """Nothing was written; the caller may retry."""
    logger.error(f"Store write failed: {exc.message} {exc.details}")
    return _error_response(503, exc)


@app.exception_handler(ProviderUnreachableError)
async def provider_unreachable_handler(request: Request, exc: ProviderUnreachableError):
    """Stripe could not be reached; the caller may retry."""
    logger.warning(f"Payment provider unreachable: {exc.message}")
    return _error_response(503, exc)


@app.exception_handler(DirectoryBillingError)
async def general_error_handler(request: Request, exc: DirectoryBillingError):
    """Handle all other application errors."""
    logger.error(f"Unhandled application error: {exc.message}")
    return _error_response(500, exc)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "directory-billing"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Directory Billing API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from directory_billing.api.routes import (  # noqa: E402
    admin,
    checkout,
    entitlements,
    jobs,
    listings,
    webhooks,
)

app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(checkout.router, prefix="/api", tags=["Checkout"])
app.include_router(listings.router, prefix="/api", tags=["Listings"])
app.include_router(entitlements.router, prefix="/api", tags=["Entitlements"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])
app.include_router(jobs.router, prefix="/api", tags=["Jobs"])
