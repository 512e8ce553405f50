"""
Responses Router

Public submission endpoints and owner operations on stored responses.

Endpoints:
    POST /api/responses/submit/{form_id}    - Submit answers (public)
    POST /api/responses/validate/{form_id}  - Check answers without storing
    GET  /api/responses/export/{form_id}    - Download as CSV or JSON
    POST /api/responses/{response_id}/sync  - Manual Airtable sync
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse

from core import models, schemas
from core.dependencies import get_response_service
from auth import get_current_user, get_current_user_optional
from services.forms.response_service import ResponseService, responses_to_csv
from utils.logging import get_logger
from utils.rate_limit import limiter, RATE_LIMITS, get_client_ip

logger = get_logger(__name__)

router = APIRouter(prefix="/api/responses", tags=["Responses"])


def _client_info(request: Request) -> dict:
    return {
        "ip": get_client_ip(request),
        "userAgent": request.headers.get("user-agent"),
        "referrer": request.headers.get("referer"),
    }


# =============================================================================
# Public
# =============================================================================

@router.post(
    "/submit/{form_id}",
    response_model=schemas.SubmissionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Submit form response",
    responses={
        400: {"description": "Answers failed validation"},
        403: {"description": "Form is not published"},
        409: {"description": "Submitter already answered this form"},
    }
)
@limiter.limit(RATE_LIMITS["submit"])
async def submit_response(
    request: Request,
    form_id: str,
    data: schemas.SubmissionRequest,
    current_user: Optional[models.User] = Depends(get_current_user_optional),
    responses: ResponseService = Depends(get_response_service),
):
    """
    Store a submission and push it to Airtable.

    The Airtable push is attempted once right away; a failed push is kept
    on the response for retry and does not fail the submission.
    """
    response, form = await responses.submit(
        form_id, data, user=current_user, client=_client_info(request)
    )
    settings = form.settings or {}
    return {
        "message": "Response submitted successfully",
        "response": response,
        "success_message": settings.get("successMessage"),
        "redirect_url": settings.get("redirectUrl"),
    }


@router.post(
    "/validate/{form_id}",
    response_model=schemas.ValidationResult,
    summary="Validate answers",
)
async def validate_response(
    form_id: str,
    data: schemas.SubmissionRequest,
    responses: ResponseService = Depends(get_response_service),
):
    return await responses.validate(form_id, data.responses)


# =============================================================================
# Owner
# =============================================================================

@router.get("/export/{form_id}", summary="Export responses")
async def export_responses(
    form_id: str,
    fmt: str = Query("csv", alias="format"),
    current_user: models.User = Depends(get_current_user),
    responses: ResponseService = Depends(get_response_service),
):
    """
    Download all responses of a form.

    CSV has Response ID, Submitted At, Status and one column per field
    label; JSON holds the full response documents.
    """
    form, items = await responses.export(form_id, current_user, fmt)

    if fmt == "csv":
        return PlainTextResponse(
            responses_to_csv(form, items),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="responses-{form.id}.csv"'},
        )

    payload = {
        "form": {"id": form.id, "title": form.title},
        "responses": [
            schemas.ResponseOut.model_validate(item).model_dump(by_alias=True)
            for item in items
        ],
    }
    return JSONResponse(
        jsonable_encoder(payload),
        headers={"Content-Disposition": f'attachment; filename="responses-{form.id}.json"'},
    )


@router.post(
    "/{response_id}/sync",
    response_model=schemas.ResponseEnvelope,
    summary="Sync response to Airtable",
)
async def sync_response(
    response_id: str,
    current_user: models.User = Depends(get_current_user),
    responses: ResponseService = Depends(get_response_service),
):
    """
    Push one response to Airtable now.

    Manual retries are not limited by the automatic attempt cap. A failed
    attempt is recorded on the response and returned, not raised.
    """
    response = await responses.sync(response_id, current_user)
    message = "Response synced successfully" if response.is_synced else "Sync failed"
    return {"message": message, "response": response}
