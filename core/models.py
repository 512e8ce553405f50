"""
Database Models Module

Defines SQLAlchemy ORM models for the application.
All models inherit from Base defined in database.py.

Nested documents (form fields, settings, stats, submitted answers, error log)
are stored in JSON columns; anything that is filtered or sorted on is a real
column. JSON values are always replaced, never mutated in place, so the ORM
sees every change.

Models:
    - User: Airtable credential and profile of an application user
    - Form: Form schema bound to one Airtable table
    - Response: One public submission and its sync state
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Boolean, Integer, JSON, Index

from config.constants import ResponseStatus
from .database import Base


def generate_id() -> str:
    """24-character hex identifier."""
    return uuid.uuid4().hex[:24]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite drops the offset) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class User(Base):
    """
    User model holding the Airtable OAuth credential.

    One row per Airtable user. The access and refresh tokens are never
    exposed through API schemas (see schemas.UserResponse).

    Attributes:
        id: Primary key
        airtable_user_id: Airtable's user id (unique)
        email: Application email (unique, lower-cased)
        airtable_access_token: Current Airtable access token
        airtable_refresh_token: Refresh token, if the provider issued one
        airtable_token_expires_at: Access token expiry
        profile: {name, avatarUrl, airtableUsername}
        is_active: Account status
        last_login_at: Last successful OAuth callback
    """

    __tablename__ = "users"

    id = Column(String(24), primary_key=True, default=generate_id)

    # Identity
    airtable_user_id = Column(String(64), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Airtable OAuth material
    airtable_access_token = Column(Text, nullable=False)
    airtable_refresh_token = Column(Text, nullable=True)
    airtable_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Profile
    profile = Column(JSON, nullable=False, default=dict)

    # Account status
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime(timezone=True), default=utcnow)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, airtable_user_id='{self.airtable_user_id}')>"


class Form(Base):
    """
    Form schema bound to an Airtable base/table.

    Attributes:
        fields: Ordered list of field definitions (see schemas.FormField)
        settings: Display/submission settings with defaults applied
        stats: {totalViews, totalSubmissions, conversionRate}
        share_settings: {isPublic, shareUrl, embedCode}
    """

    __tablename__ = "forms"
    __table_args__ = (
        Index("ix_forms_user_created", "user_id", "created_at"),
        Index("ix_forms_active_published", "is_active", "is_published"),
        Index("ix_forms_base_table", "airtable_base_id", "airtable_table_id"),
    )

    id = Column(String(24), primary_key=True, default=generate_id)

    # Owner
    user_id = Column(
        String(24),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Metadata
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Airtable connection
    airtable_base_id = Column(String(64), nullable=False)
    airtable_base_name = Column(String(255), nullable=True)
    airtable_table_id = Column(String(64), nullable=False)
    airtable_table_name = Column(String(255), nullable=True)

    # Schema and configuration
    fields = Column(JSON, nullable=False, default=list)
    settings = Column(JSON, nullable=False, default=dict)

    # Lifecycle flags
    is_active = Column(Boolean, default=True, nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)

    # Derived
    stats = Column(JSON, nullable=False, default=dict)
    share_settings = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Form(id={self.id}, title='{self.title}', published={self.is_published})>"

    @property
    def url(self) -> str:
        return f"/form/{self.id}"

    @property
    def is_public(self) -> bool:
        """Publicly visible only when both active and published."""
        return bool(self.is_active and self.is_published)


class Response(Base):
    """
    One submission to a form and its Airtable sync bookkeeping.

    The answers snapshot each field's label and type at submission time,
    so later form edits do not change what was submitted.
    """

    __tablename__ = "responses"
    __table_args__ = (
        Index("ix_responses_form_created", "form_id", "created_at"),
        Index("ix_responses_form_identity", "form_id", "submitter_identity"),
        Index("ix_responses_sync", "is_synced", "sync_attempts"),
    )

    id = Column(String(24), primary_key=True, default=generate_id)

    form_id = Column(
        String(24),
        ForeignKey("forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Airtable references (denormalized for traceability)
    airtable_base_id = Column(String(64), nullable=False)
    airtable_table_id = Column(String(64), nullable=False)
    airtable_record_id = Column(String(64), nullable=True, index=True)

    # Payload and submission context
    answers = Column(JSON, nullable=False, default=list)
    submitted_by = Column(JSON, nullable=False, default=dict)
    submitter_identity = Column(String(255), nullable=True)

    # Status
    status = Column(String(20), nullable=False, default=ResponseStatus.PENDING.value, index=True)
    errors = Column(JSON, nullable=False, default=list)

    # Sync bookkeeping
    last_sync_attempt = Column(DateTime(timezone=True), nullable=True)
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_error = Column(Text, nullable=True)
    is_synced = Column(Boolean, nullable=False, default=False)

    # "metadata" is reserved on declarative classes
    response_metadata = Column("metadata", JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Response(id={self.id}, form_id={self.form_id}, status='{self.status}')>"

    @property
    def response_data(self) -> Dict[str, Any]:
        """Answers as a {fieldId: value} map."""
        return {answer["fieldId"]: answer.get("value") for answer in (self.answers or [])}

    @property
    def sync_status(self) -> Dict[str, Optional[Any]]:
        return {
            "lastSyncAttempt": self.last_sync_attempt,
            "syncAttempts": self.sync_attempts,
            "lastSyncError": self.last_sync_error,
            "isSynced": self.is_synced,
        }
