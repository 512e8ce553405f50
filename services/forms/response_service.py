"""
Response Service

Public submissions to published forms and the owner's operations on the
stored responses (manual sync, export).

Submission:
    1. The form must be active and published (login too, if required).
    2. Answers are checked against the fields visible for those answers;
       hidden fields are dropped.
    3. With allowMultipleSubmissions off, a second submission from the same
       submitter identity (lower-cased email, else client IP) is refused.
    4. The response is stored as pending, the form's submission count is
       bumped, the response moves to submitted and one automatic sync
       attempt follows.
"""

import csv
import io
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from config.constants import (
    ResponseStatus,
    FIELD_TYPE_SINGLE_SELECT,
    FIELD_TYPE_MULTIPLE_SELECT,
    FIELD_TYPE_ATTACHMENT,
    TEXT_FIELD_TYPES,
)
from config.settings import Settings
from core.models import User, Form, Response, generate_id
from core.schemas import FileDescriptor, ResponseMetadata, SubmissionRequest
from services.forms.conditions import visible_fields
from services.forms.derivations import is_empty_value, prepare_response_for_write
from services.forms.form_service import FormService
from services.forms.sync import ResponseSyncService
from utils.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    DuplicateSubmissionError,
    InvalidRequestError,
    NotFoundError,
)
from utils.logging import get_logger
from utils.sanitize import sanitize_answer, sanitize_string

logger = get_logger(__name__)

EXPORT_FORMATS = ("csv", "json")

# Client-reported metadata that is kept with a response
CLIENT_METADATA_KEYS = ("timeToComplete", "deviceType", "browserInfo")


def index_answers(raw: Any) -> Dict[str, Dict[str, Any]]:
    """
    Normalize submitted answers to {fieldId: {"value", "files"}}.

    Accepts a {fieldId: value} map or a list of {fieldId, value, files}.
    """
    if isinstance(raw, dict):
        return {str(field_id): {"value": value, "files": None} for field_id, value in raw.items()}

    indexed = {}
    for entry in raw or []:
        if not isinstance(entry, dict) or not entry.get("fieldId"):
            raise InvalidRequestError("Each answer needs a fieldId", field="responses")
        indexed[str(entry["fieldId"])] = {
            "value": entry.get("value"),
            "files": entry.get("files"),
        }
    return indexed


def _option_names(field: Dict[str, Any]) -> List[str]:
    return [option.get("name") for option in field.get("options") or [] if option.get("name")]


def _parse_files(value: Any) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("must be a list of files")
    try:
        return [
            FileDescriptor.model_validate(item).model_dump(by_alias=True)
            for item in value
        ]
    except ValidationError:
        raise ValueError("has an invalid file entry")


def clean_metadata(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Type-check client-reported metadata; keys outside CLIENT_METADATA_KEYS are dropped.

    Raises:
        InvalidRequestError: A kept value has the wrong type
    """
    kept = {key: value for key, value in (raw or {}).items() if key in CLIENT_METADATA_KEYS}
    try:
        metadata = ResponseMetadata.model_validate(kept)
    except ValidationError as e:
        errors = [
            {"loc": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidRequestError("Invalid submission metadata", field="metadata", details={"errors": errors})
    return metadata.model_dump(by_alias=True, exclude_none=True)


def check_answer(field: Dict[str, Any], value: Any, files: Any) -> Tuple[Any, List[Dict[str, Any]]]:
    """
    Validate and clean one answer against its field definition.

    Returns:
        (value, files)

    Raises:
        ValueError: With a message naming what is wrong
    """
    field_type = field.get("airtableFieldType")
    label = field.get("label")

    if field_type == FIELD_TYPE_ATTACHMENT:
        parsed = _parse_files(files if files is not None else value)
        if field.get("required") and not parsed:
            raise ValueError(f"{label} is required")
        return None, parsed

    value = sanitize_answer(value)
    if is_empty_value(value):
        if field.get("required"):
            raise ValueError(f"{label} is required")
        return None, []

    options = _option_names(field)

    if field_type in TEXT_FIELD_TYPES:
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValueError(f"{label} must be text")
        return str(value), []

    if field_type == FIELD_TYPE_SINGLE_SELECT:
        if not isinstance(value, str):
            raise ValueError(f"{label} must be a single choice")
        if options and value not in options:
            raise ValueError(f"{label} has an invalid choice: {value}")
        return value, []

    if field_type == FIELD_TYPE_MULTIPLE_SELECT:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{label} must be a list of choices")
        invalid = [v for v in value if options and v not in options]
        if invalid:
            raise ValueError(f"{label} has invalid choices: {', '.join(invalid)}")
        return value, []

    raise ValueError(f"{label} has an unsupported type")


def check_answers(
    form: Form,
    raw_answers: Any,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Check a submission against the form.

    Returns:
        (answers, errors). answers holds one entry per visible field;
        errors holds {"field_id", "message"} entries.
    """
    indexed = index_answers(raw_answers)
    known_ids = {field.get("airtableFieldId") for field in form.fields or []}

    errors = [
        {"field_id": field_id, "message": "Unknown field"}
        for field_id in indexed
        if field_id not in known_ids
    ]

    values = {
        field_id: entry["files"] if entry["files"] is not None else entry["value"]
        for field_id, entry in indexed.items()
    }

    answers = []
    for field in visible_fields(form.fields, values):
        field_id = field["airtableFieldId"]
        entry = indexed.get(field_id, {"value": None, "files": None})
        try:
            value, files = check_answer(field, entry["value"], entry["files"])
        except ValueError as e:
            errors.append({"field_id": field_id, "message": str(e)})
            continue
        answers.append({
            "fieldId": field_id,
            "fieldLabel": field.get("label"),
            "fieldType": field.get("airtableFieldType"),
            "value": value,
            "files": files,
        })

    return answers, errors


def _export_cell(answer: Optional[Dict[str, Any]]) -> str:
    if not answer:
        return ""
    if answer.get("fieldType") == FIELD_TYPE_ATTACHMENT:
        return ", ".join(f.get("url") or f.get("filename") or "" for f in answer.get("files") or [])
    value = answer.get("value")
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def responses_to_csv(form: Form, responses: List[Response]) -> str:
    """CSV with Response ID, Submitted At, Status and one column per field."""
    fields = sorted(form.fields or [], key=lambda f: f.get("order", 0))

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Response ID", "Submitted At", "Status", *[f.get("label") for f in fields]])

    for response in responses:
        by_field = {answer.get("fieldId"): answer for answer in response.answers or []}
        writer.writerow([
            response.id,
            response.created_at.isoformat() if response.created_at else "",
            response.status,
            *[_export_cell(by_field.get(f.get("airtableFieldId"))) for f in fields],
        ])

    return buffer.getvalue()


class ResponseService:
    """
    Submission and response operations for one request.

    Args:
        db: Database session
        settings: Application settings
        sync_service: Used for the automatic push after submission
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        sync_service: Optional[ResponseSyncService] = None,
    ):
        self.db = db
        self.settings = settings
        self.sync_service = sync_service
        self.forms = FormService(db, settings)

    async def _get_public_form(self, form_id: str) -> Form:
        form = await self.db.get(Form, form_id)
        if form is None:
            raise NotFoundError("Form not found", resource="form", resource_id=form_id)
        if not form.is_public:
            raise AccessDeniedError("This form is not accepting responses")
        return form

    # =========================================================================
    # Public
    # =========================================================================

    async def validate(self, form_id: str, raw_answers: Any) -> Dict[str, Any]:
        """Dry-run the answer checks without storing anything."""
        form = await self._get_public_form(form_id)
        _, errors = check_answers(form, raw_answers)
        return {"valid": not errors, "errors": errors}

    async def submit(
        self,
        form_id: str,
        payload: SubmissionRequest,
        user: Optional[User] = None,
        client: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Response, Form]:
        """
        Accept a public submission.

        Args:
            form_id: Target form
            payload: Answers plus optional email, name and metadata
            user: Logged-in submitter, if any
            client: {"ip", "userAgent", "referrer"} of the request

        Returns:
            (response, form)

        Raises:
            NotFoundError: No such form
            AccessDeniedError: Form is inactive or unpublished
            AuthenticationError: Form requires login
            InvalidRequestError: Answers failed validation
            DuplicateSubmissionError: Submitter already answered this form
        """
        form = await self._get_public_form(form_id)
        settings = form.settings or {}
        client = client or {}

        if settings.get("requireLogin") and user is None:
            raise AuthenticationError("Login required to submit this form")

        answers, errors = check_answers(form, payload.responses)
        if errors:
            raise InvalidRequestError("Validation failed", field="responses", details={"errors": errors})

        email = (payload.email or "").strip().lower() or None
        identity = email or client.get("ip")

        if not settings.get("allowMultipleSubmissions", True) and identity:
            existing = (
                await self.db.execute(
                    select(func.count()).select_from(Response).where(
                        Response.form_id == form.id,
                        Response.submitter_identity == identity,
                    )
                )
            ).scalar_one()
            if existing:
                logger.info(f"Duplicate submission refused for form {form.id}")
                raise DuplicateSubmissionError(form.id, identity)

        metadata = clean_metadata(payload.submission_metadata)

        response = Response(
            id=generate_id(),
            form_id=form.id,
            airtable_base_id=form.airtable_base_id,
            airtable_table_id=form.airtable_table_id,
            answers=answers,
            submitted_by={
                "ip": client.get("ip"),
                "userAgent": client.get("userAgent"),
                "referrer": client.get("referrer"),
                "email": email,
                "name": sanitize_string(payload.name, max_length=255) if payload.name else None,
            },
            submitter_identity=identity,
            status=ResponseStatus.PENDING.value,
            errors=[],
            sync_attempts=0,
            is_synced=False,
            response_metadata=metadata,
        )
        prepare_response_for_write(response)
        self.db.add(response)
        await self.db.commit()

        form = await self.forms.record_submission(form)

        response.status = ResponseStatus.SUBMITTED.value
        await self.db.commit()
        await self.db.refresh(response)

        logger.info(f"Response {response.id} accepted for form {form.id}")

        if self.sync_service is not None:
            response = await self.sync_service.sync_response(self.db, response)

        return response, form

    # =========================================================================
    # Owner
    # =========================================================================

    async def get_owned_response(self, response_id: str, user: User) -> Tuple[Response, Form]:
        response = await self.db.get(Response, response_id)
        if response is None:
            raise NotFoundError("Response not found", resource="response", resource_id=response_id)
        form = await self.forms.get_owned(response.form_id, user)
        return response, form

    async def sync(self, response_id: str, user: User) -> Response:
        """Manual sync by the form owner; not limited by the attempt cap."""
        response, _ = await self.get_owned_response(response_id, user)
        return await self.sync_service.sync_response(self.db, response, force=True)

    async def sync_form(self, form_id: str, user: User) -> Dict[str, int]:
        """Automatic retry over one form's pending responses."""
        form = await self.forms.get_owned(form_id, user)
        return await self.sync_service.retry_pending(self.db, form_id=form.id)

    async def export(self, form_id: str, user: User, fmt: str = "csv") -> Tuple[Form, List[Response]]:
        """
        All responses of a form, oldest first, for download.

        Raises:
            InvalidRequestError: Unknown export format
        """
        if fmt not in EXPORT_FORMATS:
            raise InvalidRequestError(
                f"Format must be one of: {', '.join(EXPORT_FORMATS)}", field="format"
            )
        form = await self.forms.get_owned(form_id, user)
        result = await self.db.execute(
            select(Response)
            .where(Response.form_id == form.id)
            .order_by(Response.created_at.asc())
        )
        return form, list(result.scalars().all())
