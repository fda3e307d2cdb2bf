"""Intake of classic Mollie webhooks.

A classic delivery only says "resource X changed": the body carries the
resource ID (usually as the form field ``id``) and the full resource is
fetched from the Mollie API with the endpoint's API key.
"""
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.adapters.mollie_adapter import ResourceFetcherFactory, get_resource_type, mollie_adapter_factory
from hookrelay.models.webhook_endpoint import EndpointType, WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLogStatus
from hookrelay.security.crypto import SecretBox
from hookrelay.services.api_key_service import ApiKeyService
from hookrelay.services.errors import ApiKeyNotFoundError
from hookrelay.services.forwarding_service import ForwardingDispatcher
from hookrelay.services.webhook_intake import ACKNOWLEDGED, InboundWebhook, IntakeResult, WebhookIntakeService
from hookrelay.utils.payload import InvalidJSONBody, RawBody, get_header, parse_body

logger = structlog.get_logger(__name__)

INVALID_PAYLOAD = IntakeResult(400, {"error": "Invalid webhook payload: missing 'id' field"})


class ClassicWebhookService(WebhookIntakeService):
    """Service handling classic (resource ID) webhook deliveries."""

    endpoint_type = EndpointType.CLASSIC

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: ForwardingDispatcher,
        secret_box: SecretBox,
        fetcher_factory: ResourceFetcherFactory = mollie_adapter_factory,
    ):
        """
        Initialize classic webhook service.

        Args:
            db: Database session
            dispatcher: Background forwarding dispatcher
            secret_box: Decrypts the endpoint's Mollie API key
            fetcher_factory: Builds a resource fetcher from a decrypted API key
        """
        super().__init__(db, dispatcher)
        self.secret_box = secret_box
        self.fetcher_factory = fetcher_factory

    async def _process(self, endpoint: WebhookEndpoint, inbound: InboundWebhook, start: float) -> IntakeResult:
        try:
            body = parse_body(inbound.text, get_header(inbound.headers, "content-type"))
        except InvalidJSONBody as e:
            await self._write_log(
                endpoint,
                inbound,
                RawBody(inbound.text),
                start,
                WebhookLogStatus.INVALID,
                error_message=f"Invalid JSON payload: {e}",
            )
            return INVALID_PAYLOAD

        resource_id = body.get_id()
        if not isinstance(resource_id, str) or not resource_id:
            await self._write_log(
                endpoint,
                inbound,
                body,
                start,
                WebhookLogStatus.INVALID,
                error_message="Missing 'id' field",
            )
            return INVALID_PAYLOAD

        resource_type = get_resource_type(resource_id)

        if endpoint.resource_type_filter and resource_type not in endpoint.resource_type_filter:
            return self._filtered(endpoint, resource_id=resource_id, resource_type=resource_type)

        fetched_resource, fetch_error = await self._fetch_resource(endpoint, resource_id)
        status = WebhookLogStatus.SUCCESS if fetch_error is None else WebhookLogStatus.FETCH_FAILED

        log = await self._write_log(
            endpoint,
            inbound,
            body,
            start,
            status,
            resource_type=resource_type,
            resource_id=resource_id,
            fetched_resource=fetched_resource,
            fetch_error=fetch_error,
        )

        if status == WebhookLogStatus.SUCCESS:
            await self._complete_success(endpoint, log, inbound)

        return ACKNOWLEDGED

    async def _fetch_resource(self, endpoint: WebhookEndpoint, resource_id: str) -> tuple[Any, str | None]:
        """
        Fetch the notified resource with the endpoint's API key.

        Returns:
            Tuple of (resource, error); exactly one of them is set
        """
        if endpoint.api_key_id is None:
            return None, "No API key configured for endpoint"

        try:
            api_key = await ApiKeyService(self.db).get_api_key(endpoint.api_key_id, endpoint.owner_id)
        except ApiKeyNotFoundError:
            return None, "API key not found"

        try:
            client = self.fetcher_factory(self.secret_box.decrypt(api_key.encrypted_key))
            resource = await client.fetch_resource(resource_id)
        except Exception as e:
            logger.warning(
                "classic_webhook_fetch_failed",
                endpoint_id=str(endpoint.id),
                resource_id=resource_id,
                error=str(e),
            )
            return None, str(e) or "Failed to fetch resource from Mollie"

        return resource, None
