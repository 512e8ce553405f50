"""
Core Module

Provides database, models and schemas for the application.
Service wiring lives in core.dependencies and is imported directly.
"""

from .database import Base, engine, get_db, check_database_health
from .models import User, Form, Response

__all__ = [
    # Database
    "Base",
    "engine",
    "get_db",
    "check_database_health",
    # Models
    "User",
    "Form",
    "Response",
]
