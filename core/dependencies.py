"""
FastAPI Dependencies Module

Provides dependency injection for services and shared state.
Process-wide services (Airtable gateway, OAuth controller, sync service)
are singletons created on first use so their HTTP clients are reused;
request-scoped services get the request's database session.

Usage:
    from core.dependencies import get_form_service

    @router.get("/{form_id}")
    async def read(form_id: str, forms: FormService = Depends(get_form_service)):
        ...

Tests replace the singletons through app.dependency_overrides.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings, get_settings
from core.database import get_db
from utils.logging import get_logger

logger = get_logger(__name__)

# Lazily created singletons
_airtable_client = None
_auth_controller = None
_sync_service = None


# =============================================================================
# Service Providers
# =============================================================================

def get_airtable_client():
    """
    Get the AirtableClient singleton.

    Returns:
        AirtableClient: Shared Airtable REST gateway
    """
    global _airtable_client
    if _airtable_client is None:
        from services.airtable.client import AirtableClient
        _airtable_client = AirtableClient(get_settings())
    return _airtable_client


def get_auth_controller():
    """
    Get the AuthFlowController singleton.

    Returns:
        AuthFlowController: Airtable OAuth controller
    """
    global _auth_controller
    if _auth_controller is None:
        from services.auth.oauth import AuthFlowController
        settings = get_settings()
        if not settings.AIRTABLE_CLIENT_ID:
            logger.warning("AIRTABLE_CLIENT_ID not configured - Airtable login will fail")
        _auth_controller = AuthFlowController(settings, get_airtable_client())
    return _auth_controller


def get_sync_service():
    """
    Get the ResponseSyncService singleton.

    Returns:
        ResponseSyncService: Pushes responses to Airtable
    """
    global _sync_service
    if _sync_service is None:
        from services.forms.sync import ResponseSyncService
        _sync_service = ResponseSyncService(
            get_settings(), get_airtable_client(), get_auth_controller()
        )
    return _sync_service


async def shutdown_services() -> None:
    """Close shared HTTP clients and drop the singletons."""
    global _airtable_client, _auth_controller, _sync_service

    if _auth_controller is not None:
        await _auth_controller.close()
    if _airtable_client is not None:
        await _airtable_client.close()

    _airtable_client = None
    _auth_controller = None
    _sync_service = None


# =============================================================================
# Request-scoped Services
# =============================================================================

def get_app_settings() -> Settings:
    return get_settings()


def get_form_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    from services.forms.form_service import FormService
    return FormService(db, settings)


def get_response_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    sync_service=Depends(get_sync_service),
):
    from services.forms.response_service import ResponseService
    return ResponseService(db, settings, sync_service)
