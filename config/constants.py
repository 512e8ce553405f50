"""
Application Constants

Centralizes the fixed vocabularies shared by models, schemas and services:
Airtable field types, conditional-rule operators, response statuses and
OAuth scopes.

Usage:
    from config.constants import SUPPORTED_FIELD_TYPES, ResponseStatus
"""

from enum import Enum


# =============================================================================
# Airtable Field Types
# =============================================================================

FIELD_TYPE_SINGLE_LINE_TEXT = "singleLineText"
FIELD_TYPE_MULTILINE_TEXT = "multilineText"
FIELD_TYPE_SINGLE_SELECT = "singleSelect"
FIELD_TYPE_MULTIPLE_SELECT = "multipleSelect"
FIELD_TYPE_ATTACHMENT = "attachment"

# Only these Airtable field types can be bound to a form question
SUPPORTED_FIELD_TYPES = (
    FIELD_TYPE_SINGLE_LINE_TEXT,
    FIELD_TYPE_MULTILINE_TEXT,
    FIELD_TYPE_SINGLE_SELECT,
    FIELD_TYPE_MULTIPLE_SELECT,
    FIELD_TYPE_ATTACHMENT,
)

TEXT_FIELD_TYPES = (FIELD_TYPE_SINGLE_LINE_TEXT, FIELD_TYPE_MULTILINE_TEXT)


# =============================================================================
# Conditional Display Rules
# =============================================================================

class RuleOperator(str, Enum):
    """Operators allowed in a field's showWhen rules."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


# =============================================================================
# Response Status
# =============================================================================

class ResponseStatus(str, Enum):
    """
    Lifecycle of a submitted response.

    pending   -> row written, nothing else decided yet
    submitted -> accepted by the app, not yet pushed to Airtable
    failed    -> last push attempt failed (re-enterable)
    synced    -> record created in Airtable (terminal)
    """
    PENDING = "pending"
    SUBMITTED = "submitted"
    FAILED = "failed"
    SYNCED = "synced"


# =============================================================================
# OAuth
# =============================================================================

AIRTABLE_OAUTH_SCOPES = (
    "data.records:read",
    "data.records:write",
    "schema.bases:read",
)

PKCE_CHALLENGE_METHOD = "S256"


# =============================================================================
# Form Defaults
# =============================================================================

DEFAULT_FORM_SETTINGS = {
    "allowMultipleSubmissions": True,
    "requireLogin": False,
    "showProgressBar": True,
    "submitButtonText": "Submit",
    "successMessage": "Thank you for your submission!",
    "redirectUrl": None,
}

DEFAULT_FORM_STATS = {
    "totalViews": 0,
    "totalSubmissions": 0,
    "conversionRate": 0,
}

# Pagination defaults for list endpoints
DEFAULT_FORMS_PAGE_SIZE = 10
DEFAULT_RESPONSES_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Number of recently updated forms in account stats
RECENT_ACTIVITY_LIMIT = 5
