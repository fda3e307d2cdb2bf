"""Mollie webhook intake routes.

Mollie delivers to /webhooks/{classic|nextgen}/{owner_id}/{endpoint_id}.
Path IDs are taken as plain strings so a malformed ID answers 404 like an
unknown one instead of a validation error.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.adapters.mollie_adapter import ResourceFetcherFactory
from hookrelay.api.deps import get_db, get_dispatcher, get_resource_fetcher_factory, get_secret_box
from hookrelay.security.crypto import SecretBox
from hookrelay.services.classic_webhook_service import ClassicWebhookService
from hookrelay.services.forwarding_service import ForwardingDispatcher
from hookrelay.services.nextgen_webhook_service import NextgenWebhookService
from hookrelay.services.webhook_intake import InboundWebhook, IntakeResult

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _client_ip(request: Request) -> str:
    return (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or (request.client.host if request.client else None)
        or "unknown"
    )


async def _inbound(request: Request) -> InboundWebhook:
    # Header names are kept exactly as they arrived on the wire
    headers: dict[str, str] = {}
    for raw_name, raw_value in request.headers.raw:
        headers[raw_name.decode("latin-1")] = raw_value.decode("latin-1")

    return InboundWebhook(
        body=await request.body(),
        headers=headers,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent") or "unknown",
    )


def _respond(result: IntakeResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/classic/{owner_id}/{endpoint_id}")
async def receive_classic_webhook(
    owner_id: str,
    endpoint_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    dispatcher: ForwardingDispatcher = Depends(get_dispatcher),
    secret_box: SecretBox = Depends(get_secret_box),
    fetcher_factory: ResourceFetcherFactory = Depends(get_resource_fetcher_factory),
) -> JSONResponse:
    """
    Receive a classic Mollie webhook.

    The body carries only a resource ID (`id=tr_...`); the resource is fetched
    from Mollie with the endpoint's API key and stored with the log.

    Responses:
    - **200** `{ok: true}` once the delivery is logged, fetch failures included
    - **200** `{ok: true, filtered: true}` when the resource type filter drops it
    - **400** when the payload has no usable `id`
    - **403** when the endpoint is disabled, **404** when it does not exist
    """
    service = ClassicWebhookService(db, dispatcher, secret_box, fetcher_factory)
    result = await service.handle(owner_id, endpoint_id, await _inbound(request))
    return _respond(result)


@router.post("/nextgen/{owner_id}/{endpoint_id}")
async def receive_nextgen_webhook(
    owner_id: str,
    endpoint_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    dispatcher: ForwardingDispatcher = Depends(get_dispatcher),
    secret_box: SecretBox = Depends(get_secret_box),
) -> JSONResponse:
    """
    Receive a next-gen Mollie webhook.

    The JSON body is verified against the `X-Mollie-Signature` (or
    `Mollie-Signature`) HMAC-SHA256 header. Invalid signatures are still
    logged and answered with 200 so Mollie does not retry; the response
    carries `signatureValid` and a `warning`.
    """
    service = NextgenWebhookService(db, dispatcher, secret_box)
    result = await service.handle(owner_id, endpoint_id, await _inbound(request))
    return _respond(result)


@router.get("/classic/{owner_id}/{endpoint_id}")
async def classic_webhook_status(owner_id: str, endpoint_id: str) -> dict[str, str]:
    """Reachability check for the classic intake URL."""
    return {"message": "Classic webhook endpoint is active", "method": "POST"}


@router.get("/nextgen/{owner_id}/{endpoint_id}")
async def nextgen_webhook_status(owner_id: str, endpoint_id: str) -> dict[str, str]:
    """Reachability check for the next-gen intake URL."""
    return {"message": "Next-gen webhook endpoint is active", "method": "POST"}
