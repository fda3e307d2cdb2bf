"""Manual replay of logged webhook deliveries."""
from typing import Literal
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import settings
from hookrelay.metrics import webhook_replays_total
from hookrelay.models.base import utcnow
from hookrelay.models.webhook_endpoint import WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLogStatus
from hookrelay.schemas.webhook_log import ReplayResult
from hookrelay.services.endpoint_service import EndpointService
from hookrelay.services.errors import EndpointNotFoundError, LogAccessDeniedError, LogNotFoundError
from hookrelay.services.forwarding_service import Forwarder, ForwardingConfig, resolve_content_type
from hookrelay.services.webhook_log_service import WebhookLogService
from hookrelay.utils.payload import serialize_stored_body

logger = structlog.get_logger(__name__)

ReplayTarget = Literal["endpoint", "forward"]


def intake_url(endpoint: WebhookEndpoint) -> str:
    """Public URL the provider delivers this endpoint's webhooks to."""
    return f"{settings.public_base_url.rstrip('/')}{endpoint.intake_path}"


class ReplayService:
    """
    Re-sends a logged delivery and records the attempt as a new log.

    The original log is never modified. Each replay produces its own log with
    is_replay set and original_log_id pointing at the replayed entry.
    """

    def __init__(self, db: AsyncSession, forwarder: Forwarder):
        """
        Initialize replay service.

        Args:
            db: Database session
            forwarder: Forwarder used for the synchronous send
        """
        self.db = db
        self.forwarder = forwarder
        self.logs = WebhookLogService(db)

    async def replay(self, log_id: UUID, target: ReplayTarget, acting_user_id: UUID) -> ReplayResult:
        """
        Replay a logged delivery.

        "forward" is only honoured while the endpoint has forwarding enabled
        with a URL; otherwise the body goes back to the endpoint's intake URL.

        Args:
            log_id: Log to replay
            target: "endpoint" or "forward"
            acting_user_id: User requesting the replay

        Returns:
            ReplayResult with the new log ID and the forwarding outcome

        Raises:
            LogNotFoundError: If the log does not exist
            LogAccessDeniedError: If the log belongs to another user
            EndpointNotFoundError: If the log's endpoint no longer exists
        """
        original = await self.logs.get_log(log_id)
        if original is None:
            raise LogNotFoundError(log_id)

        if original.owner_id != acting_user_id:
            logger.warning("webhook_replay_denied", log_id=str(log_id), user_id=str(acting_user_id))
            raise LogAccessDeniedError(log_id)

        endpoint = await EndpointService(self.db).get_endpoint(original.endpoint_id)
        if endpoint is None:
            raise EndpointNotFoundError(original.endpoint_id)

        if target == "forward" and endpoint.forwards:
            target_url, target_type = endpoint.forwarding_url, "forward"
        else:
            target_url, target_type = intake_url(endpoint), "endpoint"

        content_type = resolve_content_type(original.request_headers, endpoint.type)
        if original.raw_body is not None:
            body = original.raw_body
        else:
            # Lossy: the re-serialized body may differ byte-wise from the original
            body = serialize_stored_body(original.request_body, original.body_format)

        result = await self.forwarder.forward(body, content_type, ForwardingConfig.for_endpoint(endpoint, url=target_url))

        now = utcnow()
        replay_log = await self.logs.create_log(
            endpoint_id=original.endpoint_id,
            owner_id=original.owner_id,
            received_at=now,
            processing_time_ms=result.time_ms,
            request_headers=original.request_headers,
            request_body=original.request_body,
            body_format=original.body_format,
            raw_body=original.raw_body,
            ip_address=original.ip_address,
            user_agent=original.user_agent,
            resource_type=original.resource_type,
            resource_id=original.resource_id,
            event_type=original.event_type,
            status=WebhookLogStatus.SUCCESS if result.success else WebhookLogStatus.INVALID,
            is_replay=True,
            original_log_id=original.id,
            replayed_at=now,
            replayed_by=acting_user_id,
            forwarded_at=now,
            forwarding_url=target_url,
            forwarding_status=result.status,
            forwarding_error=result.error,
            forwarding_time_ms=result.time_ms,
        )
        await self.db.commit()

        webhook_replays_total.labels(target_type=target_type, success=str(result.success).lower()).inc()
        logger.info(
            "webhook_replayed",
            log_id=str(original.id),
            replay_log_id=str(replay_log.id),
            target_type=target_type,
            success=result.success,
            status_code=result.status,
        )

        return ReplayResult(
            success=result.success,
            replay_log_id=replay_log.id,
            target_url=target_url,
            target_type=target_type,
            status=result.status,
            time_ms=result.time_ms,
            error=result.error,
        )
