"""
Form & Response Derivations

Pure functions computing the derived parts of forms and responses:
conversion rate, share link / embed snippet, field ordering and
validation, settings defaults, completion percentage.

FormService and ResponseService call prepare_form_for_write /
prepare_response_for_write right before every persistence write instead
of relying on ORM lifecycle hooks. None of these functions mutate their
inputs; JSON documents are always returned as fresh copies.
"""

import copy
import math
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from config.constants import DEFAULT_FORM_SETTINGS, DEFAULT_FORM_STATS
from core.models import Form, Response
from core.schemas import FormField, FormSettings
from utils.exceptions import InvalidFieldError, InvalidRequestError
from utils.sanitize import validate_redirect_url, sanitize_string

# Properties every field entry must carry (non-empty)
REQUIRED_FIELD_PROPERTIES = ("airtableFieldId", "airtableFieldName", "airtableFieldType", "label")


# =============================================================================
# Numbers
# =============================================================================

def round_half_up(value: float) -> int:
    """Round .5 upwards (Python's round() rounds half to even)."""
    return int(math.floor(value + 0.5))


def compute_conversion_rate(total_views: int, total_submissions: int) -> int:
    """round(100 * submissions / views) when views > 0, else 0."""
    if not total_views or total_views <= 0:
        return 0
    return round_half_up(100 * total_submissions / total_views)


# =============================================================================
# Form documents
# =============================================================================

def derive_stats(stats: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Stats with defaults filled in and conversion rate recomputed."""
    result = {**DEFAULT_FORM_STATS, **(stats or {})}
    result["conversionRate"] = compute_conversion_rate(
        result["totalViews"], result["totalSubmissions"]
    )
    return result


def build_embed_code(client_url: str, share_id: str) -> str:
    return (
        f'<iframe src="{client_url.rstrip("/")}/embed/{share_id}" '
        f'width="100%" height="600" frameborder="0"></iframe>'
    )


def derive_share_settings(
    form_id: str,
    share_settings: Optional[Dict[str, Any]],
    client_url: str,
) -> Dict[str, Any]:
    """
    Share metadata, generated once.

    shareUrl defaults to the form id; an existing shareUrl/embedCode is
    never overwritten.
    """
    result = {"isPublic": True, **(share_settings or {})}
    if not result.get("shareUrl"):
        result["shareUrl"] = form_id
        result["embedCode"] = build_embed_code(client_url, form_id)
    elif not result.get("embedCode"):
        result["embedCode"] = build_embed_code(client_url, result["shareUrl"])
    return result


def merge_settings(
    existing: Optional[Dict[str, Any]],
    updates: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Overlay settings updates on the existing settings and the defaults.

    Raises:
        InvalidRequestError: If a setting has the wrong type or the
            redirect URL is not an http(s) URL
    """
    merged = {**DEFAULT_FORM_SETTINGS, **(existing or {}), **(updates or {})}
    merged["redirectUrl"] = validate_redirect_url(merged.get("redirectUrl"))
    try:
        validated = FormSettings.model_validate(merged)
    except ValidationError as e:
        raise InvalidRequestError(
            "Invalid form settings",
            field="settings",
            details={"errors": _error_list(e)}
        )
    return validated.model_dump(by_alias=True)


def normalize_fields(raw_fields: Any) -> List[Dict[str, Any]]:
    """
    Validate field definitions and assign default ordering.

    Each entry needs non-empty airtableFieldId, airtableFieldName,
    airtableFieldType and label. A missing order defaults to the entry's
    index; orders must be unique.

    Returns:
        Field documents in camelCase form, in the given array order

    Raises:
        InvalidFieldError: Naming the index of the first offending entry
    """
    if not isinstance(raw_fields, list):
        raise InvalidRequestError("Fields must be a list", field="fields")

    normalized = []
    seen_orders = set()

    for index, raw in enumerate(raw_fields):
        if not isinstance(raw, dict):
            raise InvalidFieldError(index)

        missing = [prop for prop in REQUIRED_FIELD_PROPERTIES if not raw.get(prop)]
        if missing:
            raise InvalidFieldError(index, details={"missing": missing})

        entry = dict(raw)
        if entry.get("order") is None:
            entry["order"] = index
        entry["label"] = sanitize_string(str(entry["label"]), max_length=500)

        try:
            field = FormField.model_validate(entry)
        except ValidationError as e:
            raise InvalidFieldError(
                index,
                message=f"Field {index + 1} is invalid",
                details={"errors": _error_list(e)}
            )

        if field.order in seen_orders:
            raise InvalidFieldError(
                index,
                message=f"Field {index + 1} has a duplicate order {field.order}",
            )
        seen_orders.add(field.order)

        normalized.append(field.model_dump(by_alias=True, mode="json"))

    return normalized


def copy_fields(fields: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Deep copy of a form's field documents."""
    return copy.deepcopy(list(fields or []))


def prepare_form_for_write(form: Form, client_url: str) -> Form:
    """
    Apply every derived value to a form before it is written.

    The form must already have its id.
    """
    form.stats = derive_stats(form.stats)
    form.share_settings = derive_share_settings(form.id, form.share_settings, client_url)
    if not form.settings:
        form.settings = merge_settings(None)
    return form


# =============================================================================
# Response documents
# =============================================================================

def is_empty_value(value: Any) -> bool:
    """None, blank strings and empty lists/dicts count as unanswered."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def compute_completion_percentage(answers: List[Dict[str, Any]]) -> int:
    """Share of answers that are non-empty, in percent (0 for no answers)."""
    total = len(answers or [])
    if total == 0:
        return 0
    completed = sum(
        1 for answer in answers
        if not is_empty_value(answer.get("value")) or answer.get("files")
    )
    return round_half_up(100 * completed / total)


def derive_response_metadata(
    metadata: Optional[Dict[str, Any]],
    answers: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Metadata with completionPercentage computed when not supplied."""
    result = {
        "timeToComplete": None,
        "deviceType": None,
        "browserInfo": None,
        "completionPercentage": None,
        **(metadata or {}),
    }
    if result.get("completionPercentage") is None:
        result["completionPercentage"] = compute_completion_percentage(answers)
    return result


def prepare_response_for_write(response: Response) -> Response:
    """Apply every derived value to a response before it is written."""
    response.response_metadata = derive_response_metadata(
        response.response_metadata, response.answers or []
    )
    return response


# =============================================================================
# Helpers
# =============================================================================

def _error_list(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
