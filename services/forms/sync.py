"""
Response Sync

Pushes stored responses to Airtable as records and keeps their sync
bookkeeping.

State machine:
    pending -> submitted -> synced
                    |          ^
                    v          |
                  failed ------+

Every attempt increments sync_attempts and stamps last_sync_attempt.
Success stores the Airtable record id and is terminal. Failure sets
status to failed and appends one entry to the response's error log.

The automatic path (right after submission and the periodic sweep) stops
at MAX_SYNC_ATTEMPTS; such responses stay queryable as "stuck" and can
still be retried manually by the form owner.

Usage:
    sync = ResponseSyncService(settings, airtable_client, auth_controller)
    await sync.sync_response(db, response)
    summary = await sync.retry_pending(db, form_id=form.id)
"""

import asyncio
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.constants import ResponseStatus, FIELD_TYPE_ATTACHMENT
from config.settings import Settings
from core.models import Form, Response, User, utcnow
from services.airtable.client import AirtableClient
from services.airtable.exceptions import AirtableAPIError
from services.auth.oauth import AuthFlowController
from services.forms.derivations import is_empty_value, prepare_response_for_write
from utils.exceptions import AirformError, NotFoundError
from utils.logging import get_logger, log_sync_attempt

logger = get_logger(__name__)


def build_record_fields(response: Response) -> Dict[str, Any]:
    """
    Airtable record fields for a response, keyed by Airtable field id.

    Attachments are sent as [{url, filename}]; unanswered fields are left
    out so Airtable keeps its own defaults.
    """
    fields = {}
    for answer in response.answers or []:
        if answer.get("fieldType") == FIELD_TYPE_ATTACHMENT:
            files = [
                {"url": f["url"], "filename": f.get("originalName") or f.get("filename")}
                for f in answer.get("files") or []
                if f.get("url")
            ]
            if files:
                fields[answer["fieldId"]] = files
            continue

        value = answer.get("value")
        if not is_empty_value(value):
            fields[answer["fieldId"]] = value
    return fields


class ResponseSyncService:
    """Creates Airtable records for responses with the form owner's token."""

    def __init__(
        self,
        settings: Settings,
        airtable_client: AirtableClient,
        auth_controller: AuthFlowController,
    ):
        self.max_attempts = settings.MAX_SYNC_ATTEMPTS
        self.airtable = airtable_client
        self.auth = auth_controller

    def can_auto_sync(self, response: Response) -> bool:
        return (
            not response.is_synced
            and response.status != ResponseStatus.SYNCED.value
            and (response.sync_attempts or 0) < self.max_attempts
        )

    async def sync_response(
        self,
        db: AsyncSession,
        response: Response,
        force: bool = False,
    ) -> Response:
        """
        Make one sync attempt for a response.

        Args:
            db: Database session
            response: Response to push
            force: Manual retry; ignores the attempt cap

        Returns:
            The response with its sync state updated. A synced response,
            or one over the cap when not forced, is returned untouched.

        Raises:
            NotFoundError: The response's form no longer exists
        """
        if response.is_synced or response.status == ResponseStatus.SYNCED.value:
            return response
        if not force and not self.can_auto_sync(response):
            logger.info(f"Response {response.id} is over the sync attempt cap, skipping")
            return response

        form = await db.get(Form, response.form_id)
        if form is None:
            raise NotFoundError("Form not found", resource="form", resource_id=response.form_id)
        owner = await db.get(User, form.user_id)

        response.sync_attempts = (response.sync_attempts or 0) + 1
        response.last_sync_attempt = utcnow()

        try:
            if owner is None:
                raise NotFoundError("Form owner not found", resource="user", resource_id=form.user_id)
            token = await self.auth.ensure_fresh_token(db, owner)
            record = await self.airtable.create_record(
                token,
                response.airtable_base_id,
                response.airtable_table_id,
                build_record_fields(response),
            )
        except AirtableAPIError as e:
            self._record_failure(response, e.error_message, {
                "statusCode": e.status_code,
                "payload": e.payload,
            })
        except AirformError as e:
            self._record_failure(response, e.message, {
                "statusCode": e.status_code,
                "payload": e.to_dict(),
            })
        else:
            response.status = ResponseStatus.SYNCED.value
            response.airtable_record_id = record.get("id")
            response.is_synced = True
            response.last_sync_error = None
            log_sync_attempt(response.id, True, response.sync_attempts, record.get("id"))

        prepare_response_for_write(response)
        await db.commit()
        await db.refresh(response)
        return response

    def _record_failure(self, response: Response, message: str, details: Dict[str, Any]) -> None:
        response.status = ResponseStatus.FAILED.value
        response.last_sync_error = message
        response.errors = [
            *(response.errors or []),
            {"timestamp": utcnow().isoformat(), "message": message, "details": details},
        ]
        log_sync_attempt(response.id, False, response.sync_attempts, message)

    async def find_pending_sync(
        self,
        db: AsyncSession,
        form_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Response]:
        """Responses eligible for an automatic retry, oldest first."""
        query = select(Response).where(
            Response.is_synced.is_(False),
            Response.sync_attempts < self.max_attempts,
            Response.status != ResponseStatus.SYNCED.value,
        )
        if form_id:
            query = query.where(Response.form_id == form_id)
        query = query.order_by(Response.created_at.asc())
        if limit:
            query = query.limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def retry_pending(self, db: AsyncSession, form_id: Optional[str] = None) -> Dict[str, int]:
        """
        One automatic attempt for every pending candidate.

        Returns:
            {"attempted", "synced", "failed"} counts
        """
        summary = {"attempted": 0, "synced": 0, "failed": 0}

        for response in await self.find_pending_sync(db, form_id=form_id):
            try:
                response = await self.sync_response(db, response)
            except NotFoundError:
                # Orphan; removed by the sweep
                continue
            summary["attempted"] += 1
            if response.is_synced:
                summary["synced"] += 1
            else:
                summary["failed"] += 1

        if summary["attempted"]:
            logger.info(
                f"Sync retry finished: {summary['synced']} synced, "
                f"{summary['failed']} failed"
            )
        return summary

    async def delete_orphans(self, db: AsyncSession) -> int:
        """Remove responses whose form no longer exists."""
        result = await db.execute(
            delete(Response)
            .where(Response.form_id.not_in(select(Form.id)))
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount:
            logger.warning(f"Removed {result.rowcount} orphaned responses")
        return result.rowcount or 0


class SyncWorker:
    """
    Periodic sweep: retry pending responses and remove orphans.

    Disabled when SYNC_SWEEP_INTERVAL_SECONDS is 0.
    """

    def __init__(
        self,
        settings: Settings,
        sync_service: ResponseSyncService,
        session_factory: async_sessionmaker,
    ):
        self.interval = settings.SYNC_SWEEP_INTERVAL_SECONDS
        self.sync_service = sync_service
        self.session_factory = session_factory
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Dict[str, int]:
        async with self.session_factory() as db:
            orphans = await self.sync_service.delete_orphans(db)
            summary = await self.sync_service.retry_pending(db)
        return {**summary, "orphans": orphans}

    def start(self) -> None:
        if self.interval <= 0 or self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Sync worker started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Sync worker stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Sync sweep failed: {e}")
