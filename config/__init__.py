"""
Configuration Module

Provides centralized access to application settings and the fixed
vocabularies (field types, rule operators, response statuses).
"""

from .settings import settings, get_settings, Settings
from .constants import ResponseStatus, RuleOperator, SUPPORTED_FIELD_TYPES

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "ResponseStatus",
    "RuleOperator",
    "SUPPORTED_FIELD_TYPES",
]
