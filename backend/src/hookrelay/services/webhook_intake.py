"""Shared plumbing for the classic and next-gen webhook intake services."""
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.metrics import webhooks_filtered_total, webhooks_received_total
from hookrelay.models.webhook_endpoint import EndpointType, WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLog, WebhookLogStatus
from hookrelay.services.endpoint_service import EndpointService, parse_uuid
from hookrelay.services.forwarding_service import ForwardingConfig, ForwardingDispatcher, resolve_content_type
from hookrelay.services.webhook_log_service import WebhookLogService
from hookrelay.utils.payload import ParsedBody, RawBody

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class InboundWebhook:
    """A webhook delivery as received over HTTP."""

    body: bytes
    headers: dict[str, str] = field(default_factory=dict)
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class IntakeResult:
    """HTTP status code and JSON body to answer the provider with."""

    status_code: int
    body: dict[str, Any]


ENDPOINT_NOT_FOUND = IntakeResult(404, {"error": "Endpoint not found"})
ENDPOINT_DISABLED = IntakeResult(403, {"error": "Endpoint is disabled"})
FILTERED = IntakeResult(200, {"ok": True, "filtered": True})
ACKNOWLEDGED = IntakeResult(200, {"ok": True})


class WebhookIntakeService:
    """
    Base class for the intake services.

    Subclasses implement _process() for an already resolved, enabled endpoint.
    Anything _process() raises is logged, rolled back and recorded as an
    invalid delivery; the provider still gets a 200 so it does not retry.
    """

    endpoint_type: EndpointType

    def __init__(self, db: AsyncSession, dispatcher: ForwardingDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.endpoints = EndpointService(db)
        self.logs = WebhookLogService(db)
        self._log_written = False

    async def handle(self, owner_id: str | UUID, endpoint_id: str | UUID, inbound: InboundWebhook) -> IntakeResult:
        """
        Process one delivery addressed to /webhooks/{type}/{owner_id}/{endpoint_id}.

        Args:
            owner_id: Owner ID from the URL
            endpoint_id: Endpoint ID from the URL
            inbound: Body, headers and client details

        Returns:
            IntakeResult for the provider
        """
        start = time.monotonic()

        try:
            endpoint = await self.endpoints.get_intake_endpoint(owner_id, endpoint_id, self.endpoint_type)

            if endpoint is None:
                logger.warning(
                    "webhook_endpoint_not_found",
                    endpoint_type=self.endpoint_type.value,
                    owner_id=str(owner_id),
                    endpoint_id=str(endpoint_id),
                )
                return ENDPOINT_NOT_FOUND

            if not endpoint.is_enabled:
                logger.info("webhook_endpoint_disabled", endpoint_id=str(endpoint.id))
                return ENDPOINT_DISABLED

            return await self._process(endpoint, inbound, start)

        except Exception as e:
            logger.exception(
                "webhook_processing_failed",
                endpoint_type=self.endpoint_type.value,
                owner_id=str(owner_id),
                endpoint_id=str(endpoint_id),
            )
            if not self._log_written:
                await self._record_internal_error(owner_id, endpoint_id, inbound, start, e)
            return self._internal_error_result()

    async def _process(self, endpoint: WebhookEndpoint, inbound: InboundWebhook, start: float) -> IntakeResult:
        raise NotImplementedError

    def _internal_error_result(self) -> IntakeResult:
        """Acknowledgement sent when processing failed unexpectedly."""
        return ACKNOWLEDGED

    async def _write_log(
        self,
        endpoint: WebhookEndpoint,
        inbound: InboundWebhook,
        body: ParsedBody,
        start: float,
        status: WebhookLogStatus,
        **fields: Any,
    ) -> WebhookLog:
        """Write and commit the delivery's log entry."""
        log = await self.logs.create_log(
            endpoint_id=endpoint.id,
            owner_id=endpoint.owner_id,
            processing_time_ms=_elapsed_ms(start),
            request_headers=inbound.headers,
            request_body=body.to_storage(),
            body_format=body.format,
            raw_body=inbound.text,
            ip_address=inbound.ip_address,
            user_agent=inbound.user_agent,
            status=status,
            **fields,
        )
        await self.db.commit()
        self._log_written = True

        webhooks_received_total.labels(endpoint_type=self.endpoint_type.value, status=status.value).inc()
        logger.info(
            f"{self.endpoint_type.value}_webhook_logged",
            log_id=str(log.id),
            endpoint_id=str(endpoint.id),
            status=status.value,
        )

        return log

    async def _complete_success(self, endpoint: WebhookEndpoint, log: WebhookLog, inbound: InboundWebhook) -> None:
        """Count the delivery, then start the background forward if one is configured."""
        forwarding = ForwardingConfig.for_endpoint(endpoint) if endpoint.forwards else None
        content_type = resolve_content_type(inbound.headers, self.endpoint_type)
        endpoint_id = endpoint.id
        log_id = log.id

        await self.endpoints.record_receipt(endpoint_id)
        await self.db.commit()

        if forwarding is not None:
            self.dispatcher.dispatch(log_id, inbound.body, content_type, forwarding)

    def _filtered(self, endpoint: WebhookEndpoint, **context: Any) -> IntakeResult:
        webhooks_filtered_total.labels(endpoint_type=self.endpoint_type.value).inc()
        logger.info("webhook_filtered", endpoint_id=str(endpoint.id), **context)
        return FILTERED

    async def _record_internal_error(
        self,
        owner_id: str | UUID,
        endpoint_id: str | UUID,
        inbound: InboundWebhook,
        start: float,
        error: Exception,
    ) -> None:
        """Best-effort minimal log for a delivery that failed unexpectedly."""
        owner_uuid = parse_uuid(owner_id)
        endpoint_uuid = parse_uuid(endpoint_id)
        if owner_uuid is None or endpoint_uuid is None:
            return

        try:
            await self.db.rollback()
            await self.logs.create_log(
                endpoint_id=endpoint_uuid,
                owner_id=owner_uuid,
                processing_time_ms=_elapsed_ms(start),
                request_headers=inbound.headers,
                request_body=RawBody(inbound.text).to_storage(),
                body_format=RawBody.format,
                raw_body=inbound.text,
                ip_address=inbound.ip_address,
                user_agent=inbound.user_agent,
                status=WebhookLogStatus.INVALID,
                error_message=str(error) or type(error).__name__,
            )
            await self.db.commit()
        except Exception:
            logger.exception("webhook_error_log_failed", endpoint_id=str(endpoint_uuid))
            await self.db.rollback()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
