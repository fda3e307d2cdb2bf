"""Service for writing and querying webhook logs."""
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.models.base import utcnow
from hookrelay.models.webhook_endpoint import EndpointType, WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLog, WebhookLogStatus
from hookrelay.services.errors import LogNotFoundError
from hookrelay.services.forwarding_service import ForwardingResult

logger = structlog.get_logger(__name__)

# A log row joined with the name and type of its endpoint (None once the endpoint is gone)
LogWithEndpoint = tuple[WebhookLog, str | None, EndpointType | None]


def _naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class WebhookLogService:
    """Service for the webhook log store."""

    def __init__(self, db: AsyncSession):
        """Initialize webhook log service with database session."""
        self.db = db

    async def create_log(self, **fields: Any) -> WebhookLog:
        """
        Insert a log entry.

        Logs are append-only; apart from record_forwarding() nothing
        updates a row once written.

        Args:
            **fields: WebhookLog column values

        Returns:
            The flushed log entry
        """
        fields.setdefault("received_at", utcnow())
        log = WebhookLog(**fields)

        self.db.add(log)
        await self.db.flush()

        return log

    async def get_log(self, log_id: UUID) -> WebhookLog | None:
        """Load a log by ID regardless of owner."""
        result = await self.db.execute(select(WebhookLog).where(WebhookLog.id == log_id))
        return result.scalar_one_or_none()

    async def get_owned_log(self, log_id: UUID, owner_id: UUID) -> LogWithEndpoint:
        """
        Load a log owned by the given user, with its endpoint's name and type.

        Raises:
            LogNotFoundError: If the log does not exist or belongs to someone else
        """
        query = (
            select(WebhookLog, WebhookEndpoint.name, WebhookEndpoint.type)
            .outerjoin(WebhookEndpoint, WebhookEndpoint.id == WebhookLog.endpoint_id)
            .where(WebhookLog.id == log_id, WebhookLog.owner_id == owner_id)
        )
        row = (await self.db.execute(query)).first()

        if row is None:
            raise LogNotFoundError(log_id)

        return row[0], row[1], row[2]

    async def list_logs(
        self,
        owner_id: UUID,
        endpoint_id: UUID | None = None,
        status: WebhookLogStatus | None = None,
        resource_type: str | None = None,
        event_type: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[LogWithEndpoint], int]:
        """
        List an owner's logs with filtering and pagination, newest first.

        Args:
            owner_id: Owner whose logs are listed
            endpoint_id: Filter by endpoint
            status: Filter by status
            resource_type: Filter by classic resource type
            event_type: Filter by next-gen event type
            from_date: Only logs received at or after this time
            to_date: Only logs received at or before this time
            search: Case-insensitive substring of the resource ID or the body "id"
            page: Page number (1-indexed)
            limit: Items per page

        Returns:
            Tuple of (rows, total_count)
        """
        conditions = [WebhookLog.owner_id == owner_id]

        if endpoint_id:
            conditions.append(WebhookLog.endpoint_id == endpoint_id)
        if status:
            conditions.append(WebhookLog.status == status)
        if resource_type:
            conditions.append(WebhookLog.resource_type == resource_type)
        if event_type:
            conditions.append(WebhookLog.event_type == event_type)
        if from_date:
            conditions.append(WebhookLog.received_at >= _naive_utc(from_date))
        if to_date:
            conditions.append(WebhookLog.received_at <= _naive_utc(to_date))
        if search:
            conditions.append(
                or_(
                    WebhookLog.resource_id.icontains(search, autoescape=True),
                    WebhookLog.request_body["id"].as_string().icontains(search, autoescape=True),
                )
            )

        # Get total count
        count_query = select(func.count()).select_from(WebhookLog).where(*conditions)
        total = await self.db.scalar(count_query)

        # Get paginated results
        query = (
            select(WebhookLog, WebhookEndpoint.name, WebhookEndpoint.type)
            .outerjoin(WebhookEndpoint, WebhookEndpoint.id == WebhookLog.endpoint_id)
            .where(*conditions)
            .order_by(WebhookLog.received_at.desc(), WebhookLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)
        rows = [(log, name, endpoint_type) for log, name, endpoint_type in result.all()]

        return rows, total or 0

    async def delete_log(self, log_id: UUID, owner_id: UUID) -> None:
        """
        Delete one of the owner's logs.

        Raises:
            LogNotFoundError: If the log does not exist or belongs to someone else
        """
        result = await self.db.execute(
            delete(WebhookLog).where(WebhookLog.id == log_id, WebhookLog.owner_id == owner_id)
        )
        if result.rowcount == 0:
            raise LogNotFoundError(log_id)

        logger.info("webhook_log_deleted", log_id=str(log_id), owner_id=str(owner_id))

    async def record_forwarding(self, log_id: UUID, url: str, result: ForwardingResult) -> bool:
        """
        Store the outcome of the background forward on a log.

        The update only applies while forwarded_at is still empty, so the
        forwarding fields are written at most once.

        Args:
            log_id: Log entry to update
            url: URL the body was forwarded to
            result: Forwarding outcome

        Returns:
            True if the log was updated
        """
        statement = (
            update(WebhookLog)
            .where(WebhookLog.id == log_id, WebhookLog.forwarded_at.is_(None))
            .values(
                forwarded_at=utcnow(),
                forwarding_url=url,
                forwarding_status=result.status,
                forwarding_error=result.error,
                forwarding_time_ms=result.time_ms,
            )
            .execution_options(synchronize_session=False)
        )
        updated = (await self.db.execute(statement)).rowcount == 1

        if not updated:
            logger.warning("forwarding_result_not_recorded", log_id=str(log_id))

        return updated
