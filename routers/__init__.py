"""
Routers Module

API routers for the Airform application.
"""

from .auth import router as auth_router
from .airtable import router as airtable_router
from .forms import router as forms_router
from .responses import router as responses_router

__all__ = ["auth_router", "airtable_router", "forms_router", "responses_router"]
