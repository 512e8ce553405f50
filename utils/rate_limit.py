"""
Rate Limiting Middleware

Provides request rate limiting using Redis (production) or in-memory (development).
Uses slowapi for FastAPI-compatible rate limiting.

Usage:
    from utils.rate_limit import limiter, rate_limit_exceeded_handler, RATE_LIMITS

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @router.post("/submit/{form_id}")
    @limiter.limit(RATE_LIMITS["submit"])
    async def submit(request: Request, ...):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from config.settings import settings
from utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Rate Limiter Configuration
# =============================================================================

def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.

    Handles X-Forwarded-For header for requests behind a proxy/load balancer.
    Also used to record the submitter IP of public form responses.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def _get_storage_uri() -> str:
    """Use Redis if configured, otherwise in-memory."""
    if settings.REDIS_URL:
        return settings.REDIS_URL
    return "memory://"


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["200/minute"],
    storage_uri=_get_storage_uri(),
)


# =============================================================================
# Rate Limit Presets
# =============================================================================

RATE_LIMITS = {
    "auth": "10/minute",       # OAuth start / callback / refresh
    "submit": "30/minute",     # Public form submissions
    "default": "200/minute",   # General endpoints
}


# =============================================================================
# Exception Handler
# =============================================================================

async def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded
) -> JSONResponse:
    """Handle rate limit exceeded exceptions."""
    client_ip = get_client_ip(request)
    logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitExceeded",
            "message": f"Too many requests. Limit: {exc.detail}",
            "details": {"retryAfter": "60 seconds"}
        },
        headers={"Retry-After": "60"}
    )
