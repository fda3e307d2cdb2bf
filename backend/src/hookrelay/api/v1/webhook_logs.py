"""Webhook log API endpoints: query, inspect, delete and replay."""
import math
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.api.deps import get_current_user, get_db, get_forwarder
from hookrelay.models.webhook_log import WebhookLogStatus
from hookrelay.schemas.error import InternalServerErrorResponse, ValidationErrorResponse
from hookrelay.schemas.webhook_log import ReplayRequest, ReplayResult, WebhookLog, WebhookLogList
from hookrelay.services.errors import EndpointNotFoundError, LogAccessDeniedError, LogNotFoundError
from hookrelay.services.forwarding_service import Forwarder
from hookrelay.services.replay_service import ReplayService
from hookrelay.services.webhook_log_service import LogWithEndpoint, WebhookLogService

router = APIRouter(
    prefix="/webhook-logs",
    tags=["Webhook Logs"],
    responses={
        422: {"model": ValidationErrorResponse, "description": "Request validation failed"},
        500: {"model": InternalServerErrorResponse, "description": "Unexpected server error"},
    },
)


def _to_schema(row: LogWithEndpoint) -> WebhookLog:
    log, endpoint_name, endpoint_type = row
    item = WebhookLog.model_validate(log)
    item.endpoint_name = endpoint_name
    item.endpoint_type = endpoint_type
    return item


@router.get("", response_model=WebhookLogList)
async def list_webhook_logs(
    endpoint_id: UUID | None = Query(default=None, description="Filter by endpoint ID"),
    status: WebhookLogStatus | None = Query(default=None, description="Filter by status"),
    resource_type: str | None = Query(default=None, description="Filter by classic resource type"),
    event_type: str | None = Query(default=None, description="Filter by next-gen event type"),
    from_date: datetime | None = Query(default=None, description="Received at or after"),
    to_date: datetime | None = Query(default=None, description="Received at or before"),
    search: str | None = Query(default=None, min_length=1, description="Search resource ID or body id"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(default=50, ge=1, le=200, description="Items per page (max 200)"),
    db: AsyncSession = Depends(get_db),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> WebhookLogList:
    """
    List the current user's webhook logs.

    Filter logs by:
    - **endpoint_id**: Endpoint UUID
    - **status**: success, signature_failed, fetch_failed, invalid
    - **resource_type** / **event_type**: classic resource type or next-gen event type
    - **from_date** / **to_date**: received-at range
    - **search**: case-insensitive substring of the resource ID or the body `id`

    Returns logs ordered by receipt time (newest first).
    """
    service = WebhookLogService(db)
    rows, total = await service.list_logs(
        owner_id=current_user["user_id"],
        endpoint_id=endpoint_id,
        status=status,
        resource_type=resource_type,
        event_type=event_type,
        from_date=from_date,
        to_date=to_date,
        search=search,
        page=page,
        limit=limit,
    )

    return WebhookLogList(
        items=[_to_schema(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/{log_id}", response_model=WebhookLog)
async def get_webhook_log(
    log_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> WebhookLog:
    """Get one webhook log with its full request, fetch and forwarding details."""
    service = WebhookLogService(db)
    try:
        row = await service.get_owned_log(log_id, current_user["user_id"])
    except LogNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return _to_schema(row)


@router.delete("/{log_id}")
async def delete_webhook_log(
    log_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, bool]:
    """Delete one webhook log."""
    service = WebhookLogService(db)
    try:
        await service.delete_log(log_id, current_user["user_id"])
    except LogNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return {"success": True}


@router.post("/{log_id}/replay", response_model=ReplayResult)
async def replay_webhook_log(
    log_id: UUID,
    replay: ReplayRequest | None = None,
    db: AsyncSession = Depends(get_db),
    forwarder: Forwarder = Depends(get_forwarder),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> ReplayResult:
    """
    Replay a logged delivery.

    - **endpoint**: re-send to the endpoint's own intake URL
    - **forward**: re-send to the forwarding URL; falls back to **endpoint**
      when forwarding is not enabled

    The original body is sent byte for byte and a new log is written with
    `is_replay=true` pointing at the original.
    """
    service = ReplayService(db, forwarder)
    try:
        return await service.replay(log_id, (replay or ReplayRequest()).target, current_user["user_id"])
    except (LogNotFoundError, EndpointNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except LogAccessDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
