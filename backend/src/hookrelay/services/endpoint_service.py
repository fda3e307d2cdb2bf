"""Service for resolving and managing webhook endpoints."""
from uuid import UUID

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.models.base import utcnow
from hookrelay.models.webhook_endpoint import EndpointType, WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLog
from hookrelay.schemas.webhook_endpoint import ClassicEndpointCreate, EndpointCreate
from hookrelay.security.crypto import SecretBox
from hookrelay.services.api_key_service import ApiKeyService
from hookrelay.services.errors import EndpointNotFoundError

logger = structlog.get_logger(__name__)


def parse_uuid(value: str | UUID) -> UUID | None:
    """Parse an ID taken from a URL path; None when it is not a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(value)
    except (ValueError, TypeError, AttributeError):
        return None


class EndpointService:
    """Service for webhook endpoint lookup, counters and owner-side management."""

    def __init__(self, db: AsyncSession):
        """Initialize endpoint service with database session."""
        self.db = db

    async def get_intake_endpoint(
        self,
        owner_id: str | UUID,
        endpoint_id: str | UUID,
        endpoint_type: EndpointType,
    ) -> WebhookEndpoint | None:
        """
        Resolve the endpoint addressed by an intake URL.

        Args:
            owner_id: Owner ID from the URL
            endpoint_id: Endpoint ID from the URL
            endpoint_type: Protocol of the intake route

        Returns:
            The endpoint, or None when the IDs are malformed or do not match
        """
        owner_uuid = parse_uuid(owner_id)
        endpoint_uuid = parse_uuid(endpoint_id)
        if owner_uuid is None or endpoint_uuid is None:
            return None

        result = await self.db.execute(
            select(WebhookEndpoint).where(
                WebhookEndpoint.id == endpoint_uuid,
                WebhookEndpoint.owner_id == owner_uuid,
                WebhookEndpoint.type == endpoint_type,
            )
        )
        return result.scalar_one_or_none()

    async def get_endpoint(self, endpoint_id: UUID, owner_id: UUID | None = None) -> WebhookEndpoint | None:
        """Load an endpoint by ID, optionally scoped to an owner."""
        query = select(WebhookEndpoint).where(WebhookEndpoint.id == endpoint_id)
        if owner_id is not None:
            query = query.where(WebhookEndpoint.owner_id == owner_id)

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def record_receipt(self, endpoint_id: UUID) -> None:
        """
        Count a successfully processed delivery.

        Increments in SQL so concurrent deliveries never lose an update.
        """
        await self.db.execute(
            update(WebhookEndpoint)
            .where(WebhookEndpoint.id == endpoint_id)
            .values(
                total_received=WebhookEndpoint.total_received + 1,
                last_received_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    async def create_endpoint(
        self,
        owner_id: UUID,
        data: EndpointCreate,
        secret_box: SecretBox,
    ) -> WebhookEndpoint:
        """
        Create a webhook endpoint.

        Args:
            owner_id: Owner of the endpoint
            data: Validated classic or next-gen creation payload
            secret_box: Encrypts the next-gen shared secret

        Returns:
            Created endpoint

        Raises:
            ApiKeyNotFoundError: If a classic endpoint references a key the owner does not have
        """
        endpoint = WebhookEndpoint(
            owner_id=owner_id,
            name=data.name,
            type=EndpointType(data.type),
            is_enabled=data.is_enabled,
            retention_days=data.retention_days,
            forwarding_enabled=data.forwarding_enabled,
            forwarding_url=str(data.forwarding_url) if data.forwarding_url else None,
            forwarding_headers=data.forwarding_headers,
            forwarding_timeout_ms=data.forwarding_timeout_ms,
            total_received=0,
        )

        if isinstance(data, ClassicEndpointCreate):
            api_key = await ApiKeyService(self.db).get_api_key(data.api_key_id, owner_id)
            endpoint.api_key_id = api_key.id
            endpoint.resource_type_filter = data.resource_type_filter
        else:
            endpoint.shared_secret = secret_box.encrypt(data.shared_secret)
            endpoint.event_type_filter = data.event_type_filter

        self.db.add(endpoint)
        await self.db.flush()

        logger.info(
            "webhook_endpoint_created",
            endpoint_id=str(endpoint.id),
            owner_id=str(owner_id),
            endpoint_type=endpoint.type.value,
        )

        return endpoint

    async def delete_endpoint(self, endpoint_id: UUID, owner_id: UUID, purge_logs: bool = False) -> int:
        """
        Delete an endpoint.

        Logs are kept by default and stay queryable without endpoint details.

        Args:
            endpoint_id: Endpoint to delete
            owner_id: Owner of the endpoint
            purge_logs: Also delete the endpoint's logs

        Returns:
            Number of logs deleted

        Raises:
            EndpointNotFoundError: If the endpoint does not exist for this owner
        """
        endpoint = await self.get_endpoint(endpoint_id, owner_id)
        if endpoint is None:
            raise EndpointNotFoundError(endpoint_id)

        purged = 0
        if purge_logs:
            result = await self.db.execute(delete(WebhookLog).where(WebhookLog.endpoint_id == endpoint_id))
            purged = result.rowcount or 0

        await self.db.delete(endpoint)
        await self.db.flush()

        logger.info(
            "webhook_endpoint_deleted",
            endpoint_id=str(endpoint_id),
            owner_id=str(owner_id),
            logs_purged=purged,
        )

        return purged
