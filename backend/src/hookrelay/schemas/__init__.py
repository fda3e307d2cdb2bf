"""Pydantic schemas for API request/response validation."""

from hookrelay.schemas.error import (
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    InternalServerErrorResponse,
    ValidationErrorResponse,
)
from hookrelay.schemas.mollie_api_key import MollieApiKeyCreate
from hookrelay.schemas.webhook_endpoint import (
    ClassicEndpointCreate,
    EndpointCreate,
    NextgenEndpointCreate,
)
from hookrelay.schemas.webhook_log import (
    ReplayRequest,
    ReplayResult,
    WebhookLog,
    WebhookLogList,
)

__all__ = [
    # Error
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "InternalServerErrorResponse",
    "ValidationErrorResponse",
    # Mollie API key
    "MollieApiKeyCreate",
    # Endpoint
    "ClassicEndpointCreate",
    "EndpointCreate",
    "NextgenEndpointCreate",
    # Webhook log
    "ReplayRequest",
    "ReplayResult",
    "WebhookLog",
    "WebhookLogList",
]
