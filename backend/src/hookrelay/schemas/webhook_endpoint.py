"""Pydantic schemas for WebhookEndpoint model."""
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from hookrelay.models.webhook_endpoint import (
    DEFAULT_FORWARDING_TIMEOUT_MS,
    MAX_FORWARDING_TIMEOUT_MS,
    MIN_FORWARDING_TIMEOUT_MS,
)

# Resource types a classic endpoint can filter on
ResourceType = Literal["payment", "order", "refund", "subscription", "mandate", "customer", "invoice"]

# Event types a next-gen endpoint can filter on
EventType = Literal[
    "payment.created",
    "payment.paid",
    "payment.failed",
    "payment.expired",
    "payment.canceled",
    "order.created",
    "order.paid",
    "order.completed",
    "order.expired",
    "order.canceled",
    "refund.created",
    "refund.failed",
    "subscription.created",
    "subscription.activated",
    "subscription.canceled",
    "subscription.suspended",
    "subscription.resumed",
]


class EndpointBase(BaseModel):
    """Fields shared by both endpoint types."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100, description="Human readable endpoint name")
    is_enabled: bool = Field(default=True, description="Disabled endpoints answer 403 and log nothing")
    retention_days: int | None = Field(default=None, ge=1, le=365, description="Days to keep logs")
    forwarding_enabled: bool = Field(default=False, description="Forward successful deliveries downstream")
    forwarding_url: AnyHttpUrl | None = Field(default=None, description="Downstream URL receiving forwards")
    forwarding_headers: dict[str, str] | None = Field(default=None, description="Extra headers sent with forwards")
    forwarding_timeout_ms: int = Field(
        default=DEFAULT_FORWARDING_TIMEOUT_MS,
        ge=MIN_FORWARDING_TIMEOUT_MS,
        le=MAX_FORWARDING_TIMEOUT_MS,
        description="Forwarding timeout in milliseconds",
    )


class ClassicEndpointCreate(EndpointBase):
    """Schema for creating a classic endpoint.

    Classic deliveries only carry a resource ID; the resource is fetched with
    the referenced Mollie API key.
    """

    type: Literal["classic"] = "classic"
    api_key_id: UUID = Field(..., description="Mollie API key used to fetch resources")
    resource_type_filter: list[ResourceType] | None = Field(
        default=None, description="Only log these resource types"
    )


class NextgenEndpointCreate(EndpointBase):
    """Schema for creating a next-gen endpoint.

    Next-gen deliveries carry the full event and an HMAC-SHA256 signature
    computed with the shared secret.
    """

    type: Literal["nextgen"] = "nextgen"
    shared_secret: str = Field(..., min_length=1, description="Shared secret used to verify signatures")
    event_type_filter: list[EventType] | None = Field(default=None, description="Only log these event types")


EndpointCreate = Annotated[
    Union[ClassicEndpointCreate, NextgenEndpointCreate],
    Field(discriminator="type"),
]

