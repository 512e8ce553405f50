"""
Form Service

CRUD, publishing, duplication and analytics for forms, plus the owner's
views over a form's responses.

Access rules:
    - The owner can always read and modify a form.
    - Anyone else can read a form only while it is active and published;
      each such read counts as one view.

Every write goes through derivations.prepare_form_for_write so stats and
share settings are recomputed before they are stored.
"""

import copy
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from config.constants import RECENT_ACTIVITY_LIMIT, ResponseStatus
from config.settings import Settings
from core.models import User, Form, Response, generate_id, as_utc
from core.schemas import FormCreate, FormUpdate
from services.forms.derivations import (
    derive_stats,
    merge_settings,
    normalize_fields,
    copy_fields,
    prepare_form_for_write,
)
from utils.exceptions import AccessDeniedError, InvalidRequestError, NotFoundError
from utils.logging import get_logger
from utils.sanitize import sanitize_string

logger = get_logger(__name__)

FORM_STATUS_FILTERS = ("published", "draft", "inactive")


def paginate(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def parse_date_bound(value: str, end_of_day: bool = False) -> datetime:
    """
    Parse an ISO date or datetime query value into an aware datetime.

    A bare date used as an upper bound covers the whole day.

    Raises:
        InvalidRequestError: Unparseable value
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidRequestError(f"Invalid date: {value}", field="date")

    if end_of_day and len(value) == 10:
        parsed = parsed + timedelta(days=1) - timedelta(microseconds=1)
    return as_utc(parsed)


class FormService:
    """
    Form operations for one request.

    Args:
        db: Database session
        settings: Application settings (CLIENT_URL for share links)
    """

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    # =========================================================================
    # Lookup
    # =========================================================================

    async def _get(self, form_id: str) -> Form:
        form = await self.db.get(Form, form_id)
        if form is None:
            raise NotFoundError("Form not found", resource="form", resource_id=form_id)
        return form

    async def get_owned(self, form_id: str, user: User) -> Form:
        """
        Fetch a form the user owns.

        Raises:
            NotFoundError: No such form
            AccessDeniedError: Form belongs to someone else
        """
        form = await self._get(form_id)
        if form.user_id != user.id:
            logger.warning(f"User {user.id} denied access to form {form_id}")
            raise AccessDeniedError("You do not have access to this form")
        return form

    async def get_for_read(self, form_id: str, user: Optional[User] = None) -> Form:
        """
        Fetch a form for display.

        A non-owner may read only an active, published form, and each such
        read increments totalViews by one.

        Args:
            form_id: Form id
            user: Current user, None for anonymous visitors

        Raises:
            NotFoundError: No such form
            AccessDeniedError: Not the owner and the form is not public
        """
        form = await self._get(form_id)

        if user is not None and form.user_id == user.id:
            return form

        if not form.is_public:
            raise AccessDeniedError("This form is not available")

        stats = dict(form.stats or {})
        stats["totalViews"] = int(stats.get("totalViews") or 0) + 1
        form.stats = stats
        await self._save(form)
        return form

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, user: User, data: FormCreate) -> Form:
        """
        Create a form owned by the user.

        Raises:
            InvalidRequestError: Missing title, base, table or fields
            InvalidFieldError: A field entry is incomplete or malformed
        """
        title = sanitize_string(data.title or "", max_length=255)
        if not title:
            raise InvalidRequestError("Title is required", field="title")
        if not data.airtable_base_id:
            raise InvalidRequestError("Airtable base is required", field="airtableBaseId")
        if not data.airtable_table_id:
            raise InvalidRequestError("Airtable table is required", field="airtableTableId")
        if not data.fields:
            raise InvalidRequestError("At least one field is required", field="fields")

        form = Form(
            id=generate_id(),
            user_id=user.id,
            title=title,
            description=sanitize_string(data.description, max_length=2000) if data.description else None,
            airtable_base_id=data.airtable_base_id,
            airtable_base_name=data.airtable_base_name,
            airtable_table_id=data.airtable_table_id,
            airtable_table_name=data.airtable_table_name,
            fields=normalize_fields(data.fields),
            settings=merge_settings(None, data.settings),
            is_active=True,
            is_published=False,
            stats={},
            share_settings={},
        )
        self.db.add(form)
        await self._save(form)

        logger.info(f"Form created: {form.id} by user {user.id}")
        return form

    async def list_forms(
        self,
        user: User,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Form], Dict[str, Any]]:
        """
        One page of the user's forms, most recently updated first.

        Args:
            status: published (active and published), draft or inactive
            search: Case-insensitive match on title or description

        Returns:
            (forms, pagination)
        """
        conditions = [Form.user_id == user.id]

        if status == "published":
            conditions += [Form.is_published.is_(True), Form.is_active.is_(True)]
        elif status == "draft":
            conditions.append(Form.is_published.is_(False))
        elif status == "inactive":
            conditions.append(Form.is_active.is_(False))
        elif status:
            raise InvalidRequestError(
                f"Status must be one of: {', '.join(FORM_STATUS_FILTERS)}", field="status"
            )

        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(or_(Form.title.ilike(pattern), Form.description.ilike(pattern)))

        total = (
            await self.db.execute(select(func.count()).select_from(Form).where(*conditions))
        ).scalar_one()

        result = await self.db.execute(
            select(Form)
            .where(*conditions)
            .order_by(Form.updated_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        forms = list(result.scalars().all())

        pagination = paginate(page, limit, total)
        pagination["total_forms"] = total
        return forms, pagination

    async def update(self, form_id: str, user: User, data: FormUpdate) -> Form:
        """
        Apply a partial update; settings are merged over the stored ones.

        Raises:
            InvalidRequestError: Blank title or invalid settings
            InvalidFieldError: A field entry is incomplete or malformed
        """
        form = await self.get_owned(form_id, user)
        updates = data.model_dump(exclude_unset=True)

        if "title" in updates:
            title = sanitize_string(updates["title"] or "", max_length=255)
            if not title:
                raise InvalidRequestError("Title cannot be empty", field="title")
            form.title = title
        if "description" in updates:
            description = updates["description"]
            form.description = sanitize_string(description, max_length=2000) if description else None
        if updates.get("fields") is not None:
            form.fields = normalize_fields(updates["fields"])
        if updates.get("settings") is not None:
            form.settings = merge_settings(form.settings, updates["settings"])
        if updates.get("is_active") is not None:
            form.is_active = updates["is_active"]
        if updates.get("is_published") is not None:
            form.is_published = updates["is_published"]

        await self._save(form)
        logger.info(f"Form updated: {form.id}")
        return form

    async def delete(self, form_id: str, user: User) -> None:
        """
        Delete a form and every response to it in one transaction.
        """
        form = await self.get_owned(form_id, user)

        result = await self.db.execute(delete(Response).where(Response.form_id == form.id))
        await self.db.delete(form)
        await self.db.commit()

        logger.info(f"Form deleted: {form_id} ({result.rowcount} responses removed)")

    async def duplicate(self, form_id: str, user: User, title: Optional[str] = None) -> Form:
        """
        Copy a form's schema into a new unpublished form.

        Fields and settings are deep copies; stats start at zero and share
        settings are regenerated for the new id.
        """
        source = await self.get_owned(form_id, user)

        new_title = sanitize_string(title, max_length=255) if title else ""
        copy_form = Form(
            id=generate_id(),
            user_id=user.id,
            title=new_title or f"{source.title} (Copy)",
            description=source.description,
            airtable_base_id=source.airtable_base_id,
            airtable_base_name=source.airtable_base_name,
            airtable_table_id=source.airtable_table_id,
            airtable_table_name=source.airtable_table_name,
            fields=copy_fields(source.fields),
            settings=copy.deepcopy(source.settings),
            is_active=True,
            is_published=False,
            stats={},
            share_settings={},
        )
        self.db.add(copy_form)
        await self._save(copy_form)

        logger.info(f"Form duplicated: {source.id} -> {copy_form.id}")
        return copy_form

    async def publish(self, form_id: str, user: User, is_published: Any) -> Form:
        """
        Publish or unpublish a form.

        Raises:
            InvalidRequestError: is_published is not a boolean
        """
        if not isinstance(is_published, bool):
            raise InvalidRequestError("isPublished must be a boolean", field="isPublished")

        form = await self.get_owned(form_id, user)
        form.is_published = is_published
        await self._save(form)

        logger.info(f"Form {'published' if is_published else 'unpublished'}: {form.id}")
        return form

    async def record_submission(self, form: Form) -> Form:
        """Count one accepted submission; conversion rate follows."""
        stats = dict(form.stats or {})
        stats["totalSubmissions"] = int(stats.get("totalSubmissions") or 0) + 1
        form.stats = stats
        return await self._save(form)

    # =========================================================================
    # Analytics
    # =========================================================================

    async def analytics(
        self,
        form_id: str,
        user: User,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Form stats plus aggregates over the form's responses.

        The date window applies only when both bounds are given.

        Returns:
            {"form_stats": {...}, "analytics": {total_responses,
            successful_submissions, average_completion_time, responses_by_day}}
        """
        form = await self.get_owned(form_id, user)

        result = await self.db.execute(
            select(Response)
            .where(Response.form_id == form.id)
            .order_by(Response.created_at.asc())
        )
        responses = list(result.scalars().all())

        if start_date and end_date:
            start = parse_date_bound(start_date)
            end = parse_date_bound(end_date, end_of_day=True)
            responses = [
                r for r in responses
                if r.created_at is not None and start <= as_utc(r.created_at) <= end
            ]

        completion_times = [
            (r.response_metadata or {}).get("timeToComplete")
            for r in responses
        ]
        completion_times = [t for t in completion_times if isinstance(t, (int, float))]

        analytics = {
            "total_responses": len(responses),
            "successful_submissions": sum(
                1 for r in responses if r.status == ResponseStatus.SYNCED.value
            ),
            "average_completion_time": (
                round(sum(completion_times) / len(completion_times), 2)
                if completion_times else 0
            ),
            "responses_by_day": [
                {"date": as_utc(r.created_at).strftime("%Y-%m-%d"), "status": r.status}
                for r in responses
                if r.created_at is not None
            ],
        }

        return {"form_stats": derive_stats(form.stats), "analytics": analytics}

    # =========================================================================
    # Responses (owner views)
    # =========================================================================

    async def list_responses(
        self,
        form_id: str,
        user: User,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> Tuple[List[Response], Dict[str, Any]]:
        """One page of a form's responses, newest first."""
        form = await self.get_owned(form_id, user)

        conditions = [Response.form_id == form.id]
        if status:
            conditions.append(Response.status == status)

        total = (
            await self.db.execute(select(func.count()).select_from(Response).where(*conditions))
        ).scalar_one()

        result = await self.db.execute(
            select(Response)
            .where(*conditions)
            .order_by(Response.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        pagination = paginate(page, limit, total)
        pagination["total_responses"] = total
        return list(result.scalars().all()), pagination

    async def stuck_responses(self, form_id: str, user: User) -> List[Response]:
        """Unsynced responses that used up their automatic sync attempts."""
        form = await self.get_owned(form_id, user)
        result = await self.db.execute(
            select(Response)
            .where(
                Response.form_id == form.id,
                Response.is_synced.is_(False),
                Response.sync_attempts >= self.settings.MAX_SYNC_ATTEMPTS,
            )
            .order_by(Response.created_at.desc())
        )
        return list(result.scalars().all())

    # =========================================================================
    # Account overview
    # =========================================================================

    async def account_stats(self, user: User) -> Dict[str, Any]:
        """Form, response and view counts across all of the user's forms."""
        result = await self.db.execute(
            select(Form).where(Form.user_id == user.id).order_by(Form.updated_at.desc())
        )
        forms = list(result.scalars().all())
        form_ids = [form.id for form in forms]

        total_forms = len(forms)
        published = sum(1 for form in forms if form.is_published and form.is_active)
        draft = sum(1 for form in forms if not form.is_published)

        total_responses = 0
        synced = 0
        if form_ids:
            total_responses = (
                await self.db.execute(
                    select(func.count()).select_from(Response).where(Response.form_id.in_(form_ids))
                )
            ).scalar_one()
            synced = (
                await self.db.execute(
                    select(func.count()).select_from(Response).where(
                        Response.form_id.in_(form_ids), Response.is_synced.is_(True)
                    )
                )
            ).scalar_one()

        return {
            "forms": {
                "total": total_forms,
                "published": published,
                "draft": draft,
                "inactive": total_forms - published - draft,
            },
            "responses": {
                "total": total_responses,
                "synced": synced,
                "failed": total_responses - synced,
            },
            "views": {
                "total": sum(int((form.stats or {}).get("totalViews") or 0) for form in forms),
            },
            "recent_activity": forms[:RECENT_ACTIVITY_LIMIT],
        }

    # =========================================================================
    # Internal
    # =========================================================================

    async def _save(self, form: Form) -> Form:
        prepare_form_for_write(form, self.settings.CLIENT_URL)
        await self.db.commit()
        await self.db.refresh(form)
        return form
