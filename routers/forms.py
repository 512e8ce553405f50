"""
Forms Router

Form builder endpoints: CRUD, duplication, publishing, analytics and the
owner's views over submitted responses.

Endpoints:
    POST   /api/forms                          - Create form
    GET    /api/forms                          - List own forms
    GET    /api/forms/{id}                     - Read form (owner or public)
    PUT    /api/forms/{id}                     - Update form
    DELETE /api/forms/{id}                     - Delete form and responses
    POST   /api/forms/{id}/duplicate           - Copy form
    POST   /api/forms/{id}/publish             - Publish / unpublish
    GET    /api/forms/{id}/analytics           - Stats and response aggregates
    GET    /api/forms/{id}/responses           - List responses
    POST   /api/forms/{id}/responses/sync      - Retry pending syncs
    GET    /api/forms/{id}/responses/stuck     - Responses over the sync cap
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from config.constants import DEFAULT_FORMS_PAGE_SIZE, DEFAULT_RESPONSES_PAGE_SIZE, MAX_PAGE_SIZE
from core import models, schemas
from core.dependencies import get_form_service, get_response_service
from auth import get_current_user, get_current_user_optional
from services.forms.form_service import FormService
from services.forms.response_service import ResponseService
from utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/forms", tags=["Forms"])


# =============================================================================
# CRUD
# =============================================================================

@router.post(
    "",
    response_model=schemas.FormEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create form",
    responses={
        201: {"description": "Form created"},
        400: {"description": "Missing title/base/table or invalid field"},
    }
)
async def create_form(
    data: schemas.FormCreate,
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """
    Create a form bound to an Airtable table.

    Field order defaults to the position in the fields list.

    Raises:
        InvalidRequestError: Missing title, base, table or fields
        InvalidFieldError: Field entry missing a required property
    """
    form = await forms.create(current_user, data)
    return {"message": "Form created successfully", "form": form}


@router.get("", response_model=schemas.FormListResponse, summary="List forms")
async def list_forms(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_FORMS_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """The user's forms, most recently updated first."""
    items, pagination = await forms.list_forms(
        current_user, page=page, limit=limit, status=status_filter, search=search
    )
    return {"forms": items, "pagination": pagination}


@router.get(
    "/{form_id}",
    response_model=schemas.FormEnvelope,
    summary="Get form",
    responses={403: {"description": "Not the owner and form not public"}},
)
async def get_form(
    form_id: str,
    current_user: Optional[models.User] = Depends(get_current_user_optional),
    forms: FormService = Depends(get_form_service),
):
    """
    Read a form.

    The owner can read any of their forms. Anyone else can read an active,
    published form, which counts one view.
    """
    form = await forms.get_for_read(form_id, current_user)
    return {"form": form}


@router.put("/{form_id}", response_model=schemas.FormEnvelope, summary="Update form")
async def update_form(
    form_id: str,
    data: schemas.FormUpdate,
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    form = await forms.update(form_id, current_user, data)
    return {"message": "Form updated successfully", "form": form}


@router.delete("/{form_id}", response_model=schemas.MessageResponse, summary="Delete form")
async def delete_form(
    form_id: str,
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """Delete a form together with all of its responses."""
    await forms.delete(form_id, current_user)
    return {"message": "Form deleted successfully"}


# =============================================================================
# Lifecycle
# =============================================================================

@router.post(
    "/{form_id}/duplicate",
    response_model=schemas.FormEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate form",
)
async def duplicate_form(
    form_id: str,
    data: Optional[schemas.DuplicateRequest] = Body(None),
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """Copy a form; the copy is unpublished and titled "<title> (Copy)" by default."""
    form = await forms.duplicate(form_id, current_user, title=data.title if data else None)
    return {"message": "Form duplicated successfully", "form": form}


@router.post("/{form_id}/publish", response_model=schemas.PublishResponse, summary="Publish form")
async def publish_form(
    form_id: str,
    data: schemas.PublishRequest,
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """
    Publish or unpublish a form.

    Raises:
        InvalidRequestError: isPublished is not a boolean
    """
    form = await forms.publish(form_id, current_user, data.is_published)
    return {
        "message": f"Form {'published' if form.is_published else 'unpublished'} successfully",
        "form": {
            "id": form.id,
            "is_published": form.is_published,
            "share_url": (form.share_settings or {}).get("shareUrl"),
        },
    }


# =============================================================================
# Analytics & Responses
# =============================================================================

@router.get(
    "/{form_id}/analytics",
    response_model=schemas.FormAnalyticsResponse,
    summary="Form analytics",
)
async def form_analytics(
    form_id: str,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """
    Form stats with response aggregates.

    The date window applies only when both startDate and endDate are set.
    """
    return await forms.analytics(form_id, current_user, start_date, end_date)


@router.get(
    "/{form_id}/responses",
    response_model=schemas.ResponseListResponse,
    summary="List responses",
)
async def list_responses(
    form_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_RESPONSES_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    responses, pagination = await forms.list_responses(
        form_id, current_user, page=page, limit=limit, status=status_filter
    )
    return {"responses": responses, "pagination": pagination}


@router.post(
    "/{form_id}/responses/sync",
    response_model=schemas.SyncSummary,
    summary="Retry pending syncs",
)
async def sync_form_responses(
    form_id: str,
    current_user: models.User = Depends(get_current_user),
    responses: ResponseService = Depends(get_response_service),
):
    """One automatic sync attempt for each of the form's pending responses."""
    return await responses.sync_form(form_id, current_user)


@router.get(
    "/{form_id}/responses/stuck",
    response_model=schemas.StuckResponseList,
    summary="Responses needing manual sync",
)
async def stuck_responses(
    form_id: str,
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """Unsynced responses that used up their automatic attempts."""
    items = await forms.stuck_responses(form_id, current_user)
    return {"responses": items, "max_attempts": forms.settings.MAX_SYNC_ATTEMPTS}
