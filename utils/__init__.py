"""
Utilities Module

Provides shared utilities across the application:
- Logging configuration
- Custom exceptions
- Rate limiting
- Input sanitization
- Session storage cache
"""

from .logging import get_logger, setup_logging, log_api_call, log_sync_attempt
from .exceptions import (
    AirformError,
    InvalidRequestError,
    InvalidFieldError,
    StateMismatchError,
    AuthenticationError,
    NoRefreshTokenError,
    AuthExpiredError,
    AccessDeniedError,
    NotFoundError,
    DuplicateSubmissionError,
    InvalidPayloadError,
    UpstreamError,
    InternalError,
)
from .rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    RATE_LIMITS,
    get_client_ip,
)
from .sanitize import (
    validate_redirect_url,
    sanitize_string,
    sanitize_answer,
)

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "log_api_call",
    "log_sync_attempt",
    # Exceptions
    "AirformError",
    "InvalidRequestError",
    "InvalidFieldError",
    "StateMismatchError",
    "AuthenticationError",
    "NoRefreshTokenError",
    "AuthExpiredError",
    "AccessDeniedError",
    "NotFoundError",
    "DuplicateSubmissionError",
    "InvalidPayloadError",
    "UpstreamError",
    "InternalError",
    # Rate Limiting
    "limiter",
    "rate_limit_exceeded_handler",
    "RATE_LIMITS",
    "get_client_ip",
    # Sanitization
    "validate_redirect_url",
    "sanitize_string",
    "sanitize_answer",
]
