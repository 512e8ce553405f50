"""
Airtable Exceptions Module

AirtableAPIError is the raw failure of one Airtable call: HTTP status plus
the provider's error payload. Callers translate it into the application
taxonomy with translate_airtable_error at the point where they know what
they were trying to do.
"""

from typing import Any, Optional

from utils.exceptions import (
    AirformError,
    AuthExpiredError,
    NotFoundError,
    InvalidPayloadError,
    UpstreamError,
)


class AirtableAPIError(Exception):
    """
    Non-2xx answer (or transport failure) from Airtable.

    Attributes:
        status_code: HTTP status, 0 when no response was received
        payload: Decoded error body, or the raw text / transport message
    """

    def __init__(self, status_code: int, payload: Any = None, endpoint: Optional[str] = None):
        self.status_code = status_code
        self.payload = payload
        self.endpoint = endpoint
        super().__init__(f"Airtable API error {status_code} on {endpoint}: {self.error_message}")

    @property
    def error_message(self) -> str:
        """Best-effort human message out of Airtable's error shapes."""
        payload = self.payload
        if isinstance(payload, dict):
            error = payload.get("error", payload)
            if isinstance(error, dict):
                return str(error.get("message") or error.get("type") or error)
            if error is not None:
                return str(error)
            return str(payload.get("error_description") or payload)
        if payload:
            return str(payload)
        return f"HTTP {self.status_code}"

    @property
    def error_body(self) -> Any:
        """The 'error' member of the payload when present."""
        if isinstance(self.payload, dict) and "error" in self.payload:
            return self.payload["error"]
        return self.payload


def translate_airtable_error(
    exc: AirtableAPIError,
    message: str = "Airtable request failed",
    not_found_message: str = "Not found",
) -> AirformError:
    """
    Map an Airtable failure onto the application error taxonomy.

    401 -> AuthExpiredError, 404 -> NotFoundError,
    422 -> InvalidPayloadError, anything else -> UpstreamError.
    """
    if exc.status_code == 401:
        return AuthExpiredError()
    if exc.status_code == 404:
        return NotFoundError(not_found_message)
    if exc.status_code == 422:
        return InvalidPayloadError("Invalid field data", details={"error": exc.error_body})
    return UpstreamError(
        message,
        details={"statusCode": exc.status_code, "error": exc.error_body},
    )
