"""
Form Services

Form CRUD and analytics, public submissions and Airtable response sync.
"""

from .form_service import FormService
from .response_service import ResponseService, responses_to_csv
from .sync import ResponseSyncService, SyncWorker

__all__ = [
    "FormService",
    "ResponseService",
    "responses_to_csv",
    "ResponseSyncService",
    "SyncWorker",
]
