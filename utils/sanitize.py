"""
Input Sanitization Utilities

Validation and cleanup for user-supplied strings: form titles, labels,
submitted text answers and the post-submission redirect URL.

Usage:
    from utils.sanitize import validate_redirect_url, sanitize_string

    settings["redirectUrl"] = validate_redirect_url(settings.get("redirectUrl"))
"""

import re
from urllib.parse import urlparse
from typing import Optional

from utils.logging import get_logger
from utils.exceptions import InvalidRequestError

logger = get_logger(__name__)


# =============================================================================
# URL Validation
# =============================================================================

ALLOWED_SCHEMES = {"http", "https"}


def validate_redirect_url(url: Optional[str]) -> Optional[str]:
    """
    Validate the URL a respondent is sent to after submitting.

    Empty values mean "no redirect" and are returned as None.

    Raises:
        InvalidRequestError: If the URL is not an absolute http(s) URL
    """
    if url is None:
        return None
    if not isinstance(url, str):
        raise InvalidRequestError("Redirect URL must be a string", field="redirectUrl")

    url = url.strip()
    if not url:
        return None

    parsed = urlparse(url)

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise InvalidRequestError(
            f"Invalid redirect URL scheme: {parsed.scheme or 'none'}. Use http or https.",
            field="redirectUrl"
        )

    if not parsed.netloc:
        raise InvalidRequestError("Redirect URL must include a host", field="redirectUrl")

    return url


# =============================================================================
# String Sanitization
# =============================================================================

def sanitize_string(
    value: str,
    max_length: int = 1000,
    allow_html: bool = False
) -> str:
    """
    Sanitize a string input.

    - Strips whitespace
    - Limits length
    - Optionally strips HTML tags
    """
    if not value:
        return ""

    value = value.strip()

    if len(value) > max_length:
        value = value[:max_length]

    if not allow_html:
        value = re.sub(r'<[^>]+>', '', value)

    return value


def sanitize_answer(value, max_length: int = 10000):
    """
    Sanitize a submitted answer value.

    Strings are cleaned, lists are cleaned element-wise, everything else
    (numbers, booleans, file descriptors) passes through untouched.
    """
    if isinstance(value, str):
        return sanitize_string(value, max_length=max_length)
    if isinstance(value, list):
        return [sanitize_answer(item, max_length) for item in value]
    return value
