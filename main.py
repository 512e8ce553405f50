"""
Airform - Backend Application

FastAPI application for building forms on top of Airtable tables.
Form owners log in with Airtable, design forms from a table's fields and
publish them; public submissions are stored locally and pushed to
Airtable as records.

Features:
    - Airtable OAuth2 login with PKCE
    - Form builder with conditional field display
    - Public form submission with duplicate-submission policy
    - Bounded Airtable sync with manual retry
    - Form analytics and response export

Run:
    python main.py
    # or
    uvicorn main:app --reload
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
import uvicorn

from config.settings import settings
from core import models, database
from core.dependencies import get_sync_service, shutdown_services
from services.forms.sync import SyncWorker
from utils.logging import setup_logging, get_logger
from utils.exceptions import AirformError, InternalError, InvalidRequestError
from utils.rate_limit import limiter, rate_limit_exceeded_handler

# Import Routers
from routers import auth, airtable, forms, responses

# Initialize logging
setup_logging()
logger = get_logger(__name__)


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events:
        - Startup: Initialize database tables, start the sync sweep
        - Shutdown: Stop the sweep, close HTTP clients and the engine
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables
    async with database.engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
        logger.info("Database tables initialized")

    sync_worker = SyncWorker(settings, get_sync_service(), database.SessionLocal)
    sync_worker.start()
    app.state.sync_worker = sync_worker

    yield

    # Shutdown
    logger.info("Shutting down application")
    await sync_worker.stop()
    await shutdown_services()
    await database.engine.dispose()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title=settings.APP_NAME,
    description="Airtable-backed form builder API",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Attach rate limiter to app state
app.state.limiter = limiter


# =============================================================================
# Middleware
# =============================================================================

# CORS Configuration (credentials needed for the OAuth session cookie)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=500)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(AirformError)
async def airform_exception_handler(request: Request, exc: AirformError):
    """
    Handle custom Airform exceptions.

    Returns standardized error response with appropriate status code.
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message}", extra={"details": exc.details})
    else:
        logger.warning(f"{exc.__class__.__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Render malformed request bodies as InvalidRequestError (400).

    Each pydantic error is reduced to its location and message.
    """
    errors = [
        {"loc": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    error = InvalidRequestError("Invalid request body", details={"errors": errors})
    logger.warning(f"InvalidRequestError on {request.method} {request.url.path}: {errors}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Anything unexpected becomes an InternalError body."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Rate limit exceeded handler
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# =============================================================================
# Routers
# =============================================================================

app.include_router(auth.router)
app.include_router(airtable.router)
app.include_router(forms.router)
app.include_router(responses.router)


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/", tags=["Health"])
async def root():
    """
    Root endpoint - basic health check.

    Returns:
        dict: Simple status message
    """
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Detailed health check endpoint.

    Checks:
        - Database connectivity
        - Redis connectivity
        - Airtable OAuth configuration
        - Sync sweep status

    Returns:
        dict: Health status with component details
    """
    from utils.cache import check_redis_health

    db_healthy = await database.check_database_health()
    redis_healthy = await check_redis_health()
    sync_worker = getattr(app.state, "sync_worker", None)

    return {
        "status": "healthy" if db_healthy else "degraded",
        "components": {
            "database": db_healthy,
            "redis": redis_healthy,
            "airtable_configured": bool(settings.AIRTABLE_CLIENT_ID),
            "sync_sweep": bool(sync_worker and sync_worker.running),
        },
        "version": settings.APP_VERSION
    }


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
