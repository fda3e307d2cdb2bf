"""Intake of next-gen Mollie webhooks.

A next-gen delivery carries the full event as JSON plus an HMAC-SHA256
signature of the raw body, keyed with the endpoint's shared secret.
"""
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.models.webhook_endpoint import EndpointType, WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLogStatus
from hookrelay.security.crypto import DecryptionError, SecretBox, verify_signature
from hookrelay.services.forwarding_service import ForwardingDispatcher
from hookrelay.services.webhook_intake import InboundWebhook, IntakeResult, WebhookIntakeService
from hookrelay.utils.payload import InvalidJSONBody, RawBody, get_header, parse_json

SIGNATURE_HEADERS = ("x-mollie-signature", "mollie-signature")
SIGNATURE_PREFIX = "sha256="

# Payload fields that may name the event, in lookup order
EVENT_TYPE_FIELDS = ("type", "event", "eventType")

INVALID_JSON = IntakeResult(400, {"error": "Invalid JSON payload"})
PROCESSING_FAILED = IntakeResult(
    200, {"ok": True, "signatureValid": False, "warning": "Webhook could not be processed"}
)


def extract_event_type(payload: Any) -> str | None:
    """First non-empty string among the event type fields of a JSON object."""
    if not isinstance(payload, dict):
        return None
    for field_name in EVENT_TYPE_FIELDS:
        value = payload.get(field_name)
        if isinstance(value, str) and value:
            return value
    return None


class NextgenWebhookService(WebhookIntakeService):
    """Service handling next-gen (signed payload) webhook deliveries."""

    endpoint_type = EndpointType.NEXTGEN

    def __init__(self, db: AsyncSession, dispatcher: ForwardingDispatcher, secret_box: SecretBox):
        super().__init__(db, dispatcher)
        self.secret_box = secret_box

    async def _process(self, endpoint: WebhookEndpoint, inbound: InboundWebhook, start: float) -> IntakeResult:
        try:
            body = parse_json(inbound.text)
        except InvalidJSONBody:
            await self._write_log(
                endpoint,
                inbound,
                RawBody(inbound.text),
                start,
                WebhookLogStatus.INVALID,
                error_message="Invalid JSON payload",
            )
            return INVALID_JSON

        signature_header = self._signature_header(inbound.headers)
        signature_error = self._check_signature(endpoint, inbound.body, signature_header)
        signature_valid = signature_error is None
        event_type = extract_event_type(body.value)

        # Only a verified payload is trusted enough to be dropped by the filter
        if signature_valid and endpoint.event_type_filter and event_type and event_type not in endpoint.event_type_filter:
            return self._filtered(endpoint, event_type=event_type)

        status = WebhookLogStatus.SUCCESS if signature_valid else WebhookLogStatus.SIGNATURE_FAILED
        log = await self._write_log(
            endpoint,
            inbound,
            body,
            start,
            status,
            event_type=event_type,
            signature_valid=signature_valid,
            signature_header=signature_header,
            error_message=signature_error,
        )

        if signature_valid:
            await self._complete_success(endpoint, log, inbound)

        response: dict[str, Any] = {"ok": True, "signatureValid": signature_valid}
        if signature_error:
            response["warning"] = signature_error

        return IntakeResult(200, response)

    def _internal_error_result(self) -> IntakeResult:
        return PROCESSING_FAILED

    @staticmethod
    def _signature_header(headers: dict[str, str]) -> str | None:
        for name in SIGNATURE_HEADERS:
            value = get_header(headers, name)
            if value:
                return value
        return None

    def _check_signature(self, endpoint: WebhookEndpoint, raw_body: bytes, signature_header: str | None) -> str | None:
        """
        Verify the delivery signature.

        Returns:
            None when the signature is valid, otherwise why it is not
        """
        if not signature_header:
            return "Missing signature header"

        if not endpoint.shared_secret:
            return "No shared secret configured"

        try:
            secret = self.secret_box.decrypt(endpoint.shared_secret)
        except DecryptionError:
            return "Shared secret could not be decrypted"

        signature = signature_header.strip()
        if signature.lower().startswith(SIGNATURE_PREFIX):
            signature = signature[len(SIGNATURE_PREFIX):]

        if not verify_signature(raw_body, signature, secret):
            return "Signature mismatch"

        return None
