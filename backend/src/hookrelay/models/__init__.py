"""SQLAlchemy ORM models for the webhook relay."""
# Import all models here to ensure they are registered with Alembic

from hookrelay.models.base import Base
from hookrelay.models.mollie_api_key import MollieApiKey
from hookrelay.models.webhook_endpoint import EndpointType, WebhookEndpoint
from hookrelay.models.webhook_log import WebhookLog, WebhookLogStatus

__all__ = [
    "Base",
    "MollieApiKey",
    "EndpointType",
    "WebhookEndpoint",
    "WebhookLog",
    "WebhookLogStatus",
]
