"""Pydantic schemas for WebhookLog model."""
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models.webhook_endpoint import EndpointType
from hookrelay.models.webhook_log import WebhookLogStatus


class WebhookLog(BaseModel):
    """Schema for returning a webhook log entry."""

    id: UUID
    endpoint_id: UUID
    owner_id: UUID
    received_at: datetime
    processing_time_ms: int
    status: WebhookLogStatus

    request_headers: dict[str, Any]
    request_body: Any | None
    body_format: str | None
    raw_body: str | None
    ip_address: str | None
    user_agent: str | None

    resource_type: str | None
    resource_id: str | None
    fetched_resource: Any | None
    fetch_error: str | None

    event_type: str | None
    signature_valid: bool | None
    signature_header: str | None

    error_message: str | None

    forwarded_at: datetime | None
    forwarding_url: str | None
    forwarding_status: int | None
    forwarding_error: str | None
    forwarding_time_ms: int | None

    is_replay: bool
    original_log_id: UUID | None
    replayed_at: datetime | None
    replayed_by: UUID | None

    created_at: datetime

    # Joined from the endpoint; None once the endpoint is deleted
    endpoint_name: str | None = None
    endpoint_type: EndpointType | None = None

    model_config = ConfigDict(from_attributes=True)


class WebhookLogList(BaseModel):
    """Schema for paginated webhook log list."""

    items: list[WebhookLog]
    total: int
    page: int
    limit: int
    pages: int


class ReplayRequest(BaseModel):
    """Replay target selection."""

    target: Literal["endpoint", "forward"] = Field(
        default="endpoint",
        description="'endpoint' re-sends to the intake URL, 'forward' to the forwarding URL when configured",
    )


class ReplayResult(BaseModel):
    """Outcome of a replay, as returned to the caller."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    replay_log_id: UUID = Field(..., alias="replayLogId")
    target_url: str = Field(..., alias="targetUrl")
    target_type: Literal["endpoint", "forward"] = Field(..., alias="targetType")
    status: int | None = None
    time_ms: int = Field(..., alias="timeMs")
    error: str | None = None
