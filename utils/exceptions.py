"""
Custom Exceptions Module

Defines application-specific exceptions for clearer error handling.
All exceptions inherit from a base AirformError, which carries the HTTP
status code and is rendered by the exception handler in main.py.

Usage:
    from utils.exceptions import NotFoundError, AccessDeniedError

    if form is None:
        raise NotFoundError("Form not found", resource="form", resource_id=form_id)
"""

from typing import Optional, Dict, Any


class AirformError(Exception):
    """
    Base exception for all Airform application errors.

    Attributes:
        message: Human-readable error message
        details: Additional error details (optional)
        status_code: HTTP status code to return
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


# =============================================================================
# Request Validation Exceptions (400)
# =============================================================================

class InvalidRequestError(AirformError):
    """
    Raised when a request is malformed or misses required values.

    Common causes:
        - Missing title / base / table on form create
        - Non-boolean isPublished on publish
        - Required answer left empty on submission
    """

    def __init__(
        self,
        message: str = "Invalid request",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        payload = {"field": field} if field else {}
        super().__init__(
            message=message,
            details={**payload, **(details or {})},
            status_code=400
        )


class InvalidFieldError(InvalidRequestError):
    """Raised when a form field definition is incomplete or malformed."""

    def __init__(
        self,
        index: int,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.index = index
        super().__init__(
            message=message or f"Field {index + 1} is missing required properties",
            details={"index": index, **(details or {})}
        )


class StateMismatchError(InvalidRequestError):
    """
    Raised when the OAuth callback state does not match the session.

    Common causes:
        - Callback opened in a different browser (no session cookie)
        - Expired or already-consumed OAuth session
        - Forged callback (CSRF)
    """

    def __init__(self, message: str = "Invalid OAuth state"):
        super().__init__(message=message, field="state")


# =============================================================================
# Authentication Exceptions (401)
# =============================================================================

class AuthenticationError(AirformError):
    """
    Raised when the application session token is missing or invalid.

    Common causes:
        - Missing Authorization header
        - Expired or tampered JWT
        - User deleted since the token was issued
    """

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details=details,
            status_code=401
        )


class NoRefreshTokenError(AuthenticationError):
    """Raised when a refresh is requested but no Airtable refresh token is stored."""

    def __init__(self, message: str = "No refresh token available"):
        super().__init__(message=message)


class AuthExpiredError(AuthenticationError):
    """
    Raised when the Airtable access token is expired or rejected.

    The client should attempt a silent refresh instead of logging out,
    signalled by needsRefresh in the response body.
    """

    def __init__(
        self,
        message: str = "Airtable authorization expired",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "needsRefresh": True}


# =============================================================================
# Authorization Exceptions (403)
# =============================================================================

class AccessDeniedError(AirformError):
    """
    Raised when a user may not see or modify a resource.

    Common causes:
        - Reading another user's unpublished form
        - Editing another user's form
        - Inactive account
    """

    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details=details,
            status_code=403
        )


# =============================================================================
# Resource Exceptions (404 / 409 / 422)
# =============================================================================

class NotFoundError(AirformError):
    """Raised when a requested entity (local or upstream) does not exist."""

    def __init__(
        self,
        message: str = "Not found",
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        payload = {}
        if resource:
            payload["resource"] = resource
        if resource_id:
            payload["id"] = resource_id
        super().__init__(
            message=message,
            details={**payload, **(details or {})},
            status_code=404
        )


class DuplicateSubmissionError(AirformError):
    """Raised when a form that allows one submission per submitter is answered twice."""

    def __init__(self, form_id: str, identity: str):
        super().__init__(
            message="You have already submitted this form",
            details={"formId": form_id, "identity": identity},
            status_code=409
        )


class InvalidPayloadError(AirformError):
    """Raised when Airtable rejects the shape of the data sent to it."""

    def __init__(
        self,
        message: str = "Invalid field data",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details=details,
            status_code=422
        )


# =============================================================================
# Server-side Exceptions (500)
# =============================================================================

class UpstreamError(AirformError):
    """
    Raised when an Airtable call fails for any reason not mapped above.

    Common causes:
        - Airtable outage / 5xx
        - Network error or timeout
        - Rate limit on the Airtable side
    """

    def __init__(
        self,
        message: str = "Airtable request failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details=details,
            status_code=500
        )


class InternalError(AirformError):
    """Wraps unexpected exceptions so every failure has the standard body."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message=message, status_code=500)
