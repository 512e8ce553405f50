"""
API Schemas Module

Pydantic models for request/response validation.

The frontend speaks camelCase (isPublished, syncStatus.syncAttempts) while
Python attributes stay snake_case: every schema derives from CamelModel,
which generates camelCase aliases and accepts either spelling on input.
Form field definitions and answers are stored in JSON columns in their
camelCase (by_alias) form.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from config.constants import (
    RuleOperator,
    DEFAULT_FORM_SETTINGS,
)

FieldType = Literal["singleLineText", "multilineText", "singleSelect", "multipleSelect", "attachment"]


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Form Field Schemas
# =============================================================================

class ConditionalRule(CamelModel):
    """Show the owning field only when this rule holds."""
    field_id: str
    operator: RuleOperator
    value: Any = None


class FieldOption(CamelModel):
    """Choice of a single/multiple select field."""
    id: Optional[str] = None
    name: str
    color: Optional[str] = None


class FormField(CamelModel):
    """One question of a form, bound to an Airtable field."""
    airtable_field_id: str
    airtable_field_name: str
    airtable_field_type: FieldType
    label: str
    placeholder: Optional[str] = None
    description: Optional[str] = None
    required: bool = False
    options: List[FieldOption] = Field(default_factory=list)
    show_when: List[ConditionalRule] = Field(default_factory=list)
    order: int
    is_visible: bool = True

    @field_validator("options", mode="before")
    @classmethod
    def unwrap_choices(cls, value):
        """Accept Airtable's raw {"choices": [...]} options object."""
        if value is None:
            return []
        if isinstance(value, dict):
            return value.get("choices") or []
        return value


class FormSettings(CamelModel):
    allow_multiple_submissions: bool = DEFAULT_FORM_SETTINGS["allowMultipleSubmissions"]
    require_login: bool = DEFAULT_FORM_SETTINGS["requireLogin"]
    show_progress_bar: bool = DEFAULT_FORM_SETTINGS["showProgressBar"]
    submit_button_text: str = DEFAULT_FORM_SETTINGS["submitButtonText"]
    success_message: str = DEFAULT_FORM_SETTINGS["successMessage"]
    redirect_url: Optional[str] = None


class FormStats(CamelModel):
    total_views: int = 0
    total_submissions: int = 0
    conversion_rate: int = 0


class ShareSettings(CamelModel):
    is_public: bool = True
    share_url: Optional[str] = None
    embed_code: Optional[str] = None


# =============================================================================
# Form Request Schemas
# =============================================================================

class FormCreate(CamelModel):
    """
    Form creation payload.

    Required values are checked by FormService so that a missing one is
    reported as a 400 with the offending field index, not a 422.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    airtable_base_id: Optional[str] = None
    airtable_base_name: Optional[str] = None
    airtable_table_id: Optional[str] = None
    airtable_table_name: Optional[str] = None
    fields: Optional[List[Any]] = None
    settings: Optional[Dict[str, Any]] = None


class FormUpdate(CamelModel):
    """Partial form update; only supplied values change."""
    title: Optional[str] = None
    description: Optional[str] = None
    fields: Optional[List[Any]] = None
    settings: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    is_published: Optional[bool] = None


class DuplicateRequest(CamelModel):
    title: Optional[str] = None


class PublishRequest(CamelModel):
    # Checked for a real boolean by FormService
    is_published: Any = None


# =============================================================================
# Form Response Schemas
# =============================================================================

class FormResponse(CamelModel):
    """Full form document."""
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    airtable_base_id: str
    airtable_base_name: Optional[str] = None
    airtable_table_id: str
    airtable_table_name: Optional[str] = None
    fields: List[FormField] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)
    is_active: bool
    is_published: bool
    stats: FormStats = Field(default_factory=FormStats)
    share_settings: ShareSettings = Field(default_factory=ShareSettings)
    url: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FormSummary(CamelModel):
    """Form as shown in the dashboard list."""
    id: str
    title: str
    description: Optional[str] = None
    is_active: bool
    is_published: bool
    stats: FormStats = Field(default_factory=FormStats)
    airtable_base_name: Optional[str] = None
    airtable_table_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FormPagination(CamelModel):
    current_page: int
    total_pages: int
    total_forms: int
    has_next: bool
    has_prev: bool


class FormListResponse(CamelModel):
    forms: List[FormSummary]
    pagination: FormPagination


class FormEnvelope(CamelModel):
    message: Optional[str] = None
    form: FormResponse


class PublishedForm(CamelModel):
    id: str
    is_published: bool
    share_url: Optional[str] = None


class PublishResponse(CamelModel):
    message: str
    form: PublishedForm


# =============================================================================
# Analytics Schemas
# =============================================================================

class DayStatus(CamelModel):
    date: str
    status: str


class ResponseAnalytics(CamelModel):
    total_responses: int = 0
    successful_submissions: int = 0
    average_completion_time: float = 0
    responses_by_day: List[DayStatus] = Field(default_factory=list)


class FormAnalyticsResponse(CamelModel):
    form_stats: FormStats
    analytics: ResponseAnalytics


# =============================================================================
# Response (Submission) Schemas
# =============================================================================

class FileDescriptor(CamelModel):
    original_name: Optional[str] = None
    filename: Optional[str] = None
    size: Optional[int] = None
    mimetype: Optional[str] = None
    url: Optional[str] = None


class FieldAnswer(CamelModel):
    field_id: str
    field_label: str
    field_type: FieldType
    value: Any = None
    files: List[FileDescriptor] = Field(default_factory=list)


class Submitter(CamelModel):
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


class ErrorEntry(CamelModel):
    timestamp: datetime
    message: str
    details: Any = None


class SyncStatus(CamelModel):
    last_sync_attempt: Optional[datetime] = None
    sync_attempts: int = 0
    last_sync_error: Optional[str] = None
    is_synced: bool = False


class ResponseMetadata(CamelModel):
    time_to_complete: Optional[float] = None
    device_type: Optional[str] = None
    browser_info: Optional[str] = None
    completion_percentage: Optional[int] = None


class ResponseOut(CamelModel):
    """A stored submission as returned to the form owner."""
    id: str
    form_id: str
    airtable_base_id: str
    airtable_table_id: str
    airtable_record_id: Optional[str] = None
    answers: List[FieldAnswer] = Field(
        default_factory=list,
        validation_alias=AliasChoices("answers", "responses"),
        serialization_alias="responses",
    )
    submitted_by: Submitter = Field(default_factory=Submitter)
    status: str
    sync_status: SyncStatus = Field(default_factory=SyncStatus)
    errors: List[ErrorEntry] = Field(default_factory=list)
    response_metadata: ResponseMetadata = Field(
        default_factory=ResponseMetadata,
        validation_alias=AliasChoices("response_metadata", "metadata"),
        serialization_alias="metadata",
    )
    response_data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ResponsePagination(CamelModel):
    current_page: int
    total_pages: int
    total_responses: int
    has_next: bool
    has_prev: bool


class ResponseListResponse(CamelModel):
    responses: List[ResponseOut]
    pagination: ResponsePagination


class SubmissionRequest(CamelModel):
    """
    Public submission payload.

    responses is either a {fieldId: value} map or a list of
    {fieldId, value, files} entries.
    """
    responses: Union[Dict[str, Any], List[Dict[str, Any]]] = Field(default_factory=dict)
    email: Optional[str] = None
    name: Optional[str] = None
    submission_metadata: Optional[Dict[str, Any]] = Field(default=None, alias="metadata")


class AnswerError(CamelModel):
    field_id: Optional[str] = None
    message: str


class ValidationResult(CamelModel):
    valid: bool
    errors: List[AnswerError] = Field(default_factory=list)


class SubmissionResult(CamelModel):
    message: str
    response: ResponseOut
    success_message: str
    redirect_url: Optional[str] = None


class ResponseEnvelope(CamelModel):
    message: str
    response: ResponseOut


class SyncSummary(CamelModel):
    attempted: int = 0
    synced: int = 0
    failed: int = 0


class StuckResponseList(CamelModel):
    """Unsynced responses that reached the automatic attempt cap."""
    responses: List[ResponseOut]
    max_attempts: int


# =============================================================================
# User / Auth Schemas
# =============================================================================

class UserProfile(CamelModel):
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    airtable_username: Optional[str] = None


class UserResponse(CamelModel):
    """External view of a user. Never carries Airtable tokens."""
    id: str
    email: str
    airtable_user_id: str
    profile: UserProfile = Field(default_factory=UserProfile)
    is_active: bool = True
    airtable_token_expires_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AuthUrlResponse(CamelModel):
    auth_url: str


class MessageResponse(CamelModel):
    message: str


class ProfileUpdate(CamelModel):
    name: Optional[str] = None


class ProfileUpdateResponse(CamelModel):
    message: str
    user: UserResponse


class VerifyResponse(CamelModel):
    valid: bool
    needs_refresh: bool = False
    message: Optional[str] = None
    user: Optional[UserResponse] = None


class FormCounts(CamelModel):
    total: int = 0
    published: int = 0
    draft: int = 0
    inactive: int = 0


class ResponseCounts(CamelModel):
    total: int = 0
    synced: int = 0
    failed: int = 0


class ViewCounts(CamelModel):
    total: int = 0


class RecentForm(CamelModel):
    id: str
    title: str
    is_published: bool
    stats: FormStats = Field(default_factory=FormStats)
    updated_at: Optional[datetime] = None


class AccountStats(CamelModel):
    forms: FormCounts
    responses: ResponseCounts
    views: ViewCounts
    recent_activity: List[RecentForm] = Field(default_factory=list)


# =============================================================================
# Airtable Proxy Schemas
# =============================================================================

class CreateRecordRequest(CamelModel):
    fields: Optional[Dict[str, Any]] = None


class AirtableBase(CamelModel):
    id: str
    name: Optional[str] = None
    permission_level: Optional[str] = None


class AirtableFieldInfo(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    options: Optional[Dict[str, Any]] = None


class AirtableTableInfo(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    primary_field_id: Optional[str] = None


class AirtableTable(AirtableTableInfo):
    """A table with its complete field list."""
    fields: List[AirtableFieldInfo] = Field(default_factory=list)


class BaseListResponse(CamelModel):
    bases: List[AirtableBase]


class TableListResponse(CamelModel):
    tables: List[AirtableTable]


class FieldListResponse(CamelModel):
    """Form-compatible fields of one table."""
    fields: List[AirtableFieldInfo]
    table: AirtableTableInfo


class RecordCreateResponse(CamelModel):
    message: str
    record: Dict[str, Any]


class RecordListResponse(CamelModel):
    records: List[Dict[str, Any]] = Field(default_factory=list)
    offset: Optional[str] = None


class ConnectionTestResponse(CamelModel):
    message: str
    bases_count: int
