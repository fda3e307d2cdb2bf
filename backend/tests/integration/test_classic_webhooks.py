"""Integration tests for classic Mollie webhook intake."""
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.adapters.mollie_adapter import MollieAPIError
from hookrelay.models.webhook_endpoint import EndpointType
from hookrelay.models.webhook_log import WebhookLogStatus
from hookrelay.services.forwarding_service import ForwardingDispatcher
from utils.db import fetch_logs, reload
from utils.factories import FORWARD_URL, OTHER_OWNER_ID, OWNER_ID, mollie_api_key
from utils.fakes import FakeMollie, RecordingTarget

FORM = {"content-type": "application/x-www-form-urlencoded"}


def _url(endpoint) -> str:
    return f"/webhooks/classic/{endpoint.owner_id}/{endpoint.id}"


@pytest_asyncio.fixture
async def classic_endpoint(make_api_key, make_endpoint):
    api_key = await make_api_key(api_key=mollie_api_key())
    return await make_endpoint(api_key_id=api_key.id)


@pytest.mark.asyncio
async def test_classic_webhook_fetches_and_logs_resource(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_api_key,
    make_endpoint,
    fake_mollie: FakeMollie,
) -> None:
    """Test the happy path: the resource is fetched and the delivery is logged."""
    plaintext_key = mollie_api_key()
    api_key = await make_api_key(api_key=plaintext_key)
    endpoint = await make_endpoint(api_key_id=api_key.id)
    fake_mollie.resources["tr_WDqYK6vllg"] = {"resource": "payment", "id": "tr_WDqYK6vllg", "status": "paid"}

    response = await async_client.post(
        _url(endpoint),
        content="id=tr_WDqYK6vllg",
        headers={**FORM, "user-agent": "Mollie/1.0", "x-forwarded-for": "87.233.217.1"},
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True}

    # The fetcher got the decrypted key
    assert fake_mollie.api_keys == [plaintext_key]

    logs = await fetch_logs(db_session, endpoint.id)
    assert len(logs) == 1
    log = logs[0]
    assert log.status == WebhookLogStatus.SUCCESS
    assert log.owner_id == OWNER_ID
    assert log.resource_id == "tr_WDqYK6vllg"
    assert log.resource_type == "payment"
    assert log.fetched_resource["status"] == "paid"
    assert log.fetch_error is None
    assert log.request_body == {"id": "tr_WDqYK6vllg"}
    assert log.body_format == "form"
    assert log.raw_body == "id=tr_WDqYK6vllg"
    assert log.ip_address == "87.233.217.1"
    assert log.user_agent == "Mollie/1.0"
    assert log.request_headers["content-type"] == "application/x-www-form-urlencoded"
    assert log.forwarded_at is None

    endpoint = await reload(db_session, endpoint)
    assert endpoint.total_received == 1
    assert endpoint.last_received_at is not None


@pytest.mark.asyncio
async def test_classic_webhook_json_scalar_body(
    async_client: AsyncClient, db_session: AsyncSession, classic_endpoint, fake_mollie: FakeMollie
) -> None:
    fake_mollie.resources["ord_kEn1PlbGa"] = {"resource": "order", "id": "ord_kEn1PlbGa"}

    response = await async_client.post(
        _url(classic_endpoint), content='"ord_kEn1PlbGa"', headers={"content-type": "application/json"}
    )

    assert response.status_code == 200
    [log] = await fetch_logs(db_session, classic_endpoint.id)
    assert log.status == WebhookLogStatus.SUCCESS
    assert log.resource_type == "order"
    assert log.body_format == "json"


@pytest.mark.asyncio
async def test_classic_webhook_missing_id_is_logged_invalid(
    async_client: AsyncClient, db_session: AsyncSession, classic_endpoint
) -> None:
    response = await async_client.post(_url(classic_endpoint), content="testmode=true", headers=FORM)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid webhook payload: missing 'id' field"}

    [log] = await fetch_logs(db_session, classic_endpoint.id)
    assert log.status == WebhookLogStatus.INVALID
    assert log.error_message == "Missing 'id' field"
    assert (await reload(db_session, classic_endpoint)).total_received == 0


@pytest.mark.asyncio
async def test_classic_webhook_invalid_json_is_logged_invalid(
    async_client: AsyncClient, db_session: AsyncSession, classic_endpoint
) -> None:
    response = await async_client.post(
        _url(classic_endpoint), content="{broken", headers={"content-type": "application/json"}
    )

    assert response.status_code == 400

    [log] = await fetch_logs(db_session, classic_endpoint.id)
    assert log.status == WebhookLogStatus.INVALID
    assert log.body_format == "raw"
    assert log.raw_body == "{broken"
    assert log.error_message.startswith("Invalid JSON payload")


@pytest.mark.asyncio
async def test_classic_webhook_filtered_resource_type_not_logged(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_api_key,
    make_endpoint,
    fake_mollie: FakeMollie,
) -> None:
    """Test that a resource type outside the filter is acknowledged without a log."""
    api_key = await make_api_key()
    endpoint = await make_endpoint(api_key_id=api_key.id, resource_type_filter=["payment"])

    response = await async_client.post(_url(endpoint), content="id=ord_123", headers=FORM)

    assert response.status_code == 200
    assert response.json() == {"ok": True, "filtered": True}
    assert await fetch_logs(db_session, endpoint.id) == []
    assert fake_mollie.api_keys == []
    assert (await reload(db_session, endpoint)).total_received == 0


@pytest.mark.asyncio
async def test_classic_webhook_fetch_failure_is_logged(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_api_key,
    make_endpoint,
    fake_mollie: FakeMollie,
    forward_target: RecordingTarget,
    dispatcher: ForwardingDispatcher,
) -> None:
    """Test that a failed fetch is acknowledged, logged, not counted and not forwarded."""
    api_key = await make_api_key()
    endpoint = await make_endpoint(api_key_id=api_key.id, forwarding_enabled=True, forwarding_url=FORWARD_URL)
    fake_mollie.error = MollieAPIError("Mollie API returned 401: Missing authentication", 401)

    response = await async_client.post(_url(endpoint), content="id=tr_WDqYK6vllg", headers=FORM)
    await dispatcher.drain()

    assert response.status_code == 200
    [log] = await fetch_logs(db_session, endpoint.id)
    assert log.status == WebhookLogStatus.FETCH_FAILED
    assert log.fetch_error == "Mollie API returned 401: Missing authentication"
    assert log.fetched_resource is None
    assert log.forwarded_at is None
    assert forward_target.requests == []
    assert (await reload(db_session, endpoint)).total_received == 0


@pytest.mark.asyncio
async def test_classic_webhook_without_api_key(
    async_client: AsyncClient, db_session: AsyncSession, make_endpoint
) -> None:
    endpoint = await make_endpoint(api_key_id=None)

    response = await async_client.post(_url(endpoint), content="id=tr_WDqYK6vllg", headers=FORM)

    assert response.status_code == 200
    [log] = await fetch_logs(db_session, endpoint.id)
    assert log.status == WebhookLogStatus.FETCH_FAILED
    assert log.fetch_error == "No API key configured for endpoint"


@pytest.mark.asyncio
async def test_classic_webhook_api_key_of_other_owner_not_used(
    async_client: AsyncClient, db_session: AsyncSession, make_api_key, make_endpoint, fake_mollie: FakeMollie
) -> None:
    foreign_key = await make_api_key(owner_id=OTHER_OWNER_ID)
    endpoint = await make_endpoint(api_key_id=foreign_key.id)

    await async_client.post(_url(endpoint), content="id=tr_WDqYK6vllg", headers=FORM)

    [log] = await fetch_logs(db_session, endpoint.id)
    assert log.fetch_error == "API key not found"
    assert fake_mollie.api_keys == []


@pytest.mark.asyncio
async def test_classic_webhook_success_is_forwarded(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_api_key,
    make_endpoint,
    fake_mollie: FakeMollie,
    forward_target: RecordingTarget,
    dispatcher: ForwardingDispatcher,
) -> None:
    """Test that a successful delivery is forwarded byte for byte in the background."""
    api_key = await make_api_key()
    endpoint = await make_endpoint(
        api_key_id=api_key.id,
        forwarding_enabled=True,
        forwarding_url=FORWARD_URL,
        forwarding_headers={"X-Relay-Token": "t0k3n"},
    )
    fake_mollie.resources["tr_WDqYK6vllg"] = {"id": "tr_WDqYK6vllg"}

    response = await async_client.post(_url(endpoint), content="id=tr_WDqYK6vllg&x=%20y", headers=FORM)
    assert response.status_code == 200

    await dispatcher.drain()

    [request] = forward_target.requests
    assert str(request.url) == FORWARD_URL
    assert request.content == b"id=tr_WDqYK6vllg&x=%20y"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert request.headers["x-relay-token"] == "t0k3n"

    [log] = await fetch_logs(db_session, endpoint.id)
    assert log.forwarded_at is not None
    assert log.forwarding_url == FORWARD_URL
    assert log.forwarding_status == 200
    assert log.forwarding_error is None
    assert log.forwarding_time_ms is not None


@pytest.mark.asyncio
async def test_classic_webhook_forward_failure_recorded(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_api_key,
    make_endpoint,
    fake_mollie: FakeMollie,
    forward_target: RecordingTarget,
    dispatcher: ForwardingDispatcher,
) -> None:
    api_key = await make_api_key()
    endpoint = await make_endpoint(api_key_id=api_key.id, forwarding_enabled=True, forwarding_url=FORWARD_URL)
    fake_mollie.resources["tr_WDqYK6vllg"] = {"id": "tr_WDqYK6vllg"}
    forward_target.responder = lambda request: httpx.Response(503, text="maintenance")

    response = await async_client.post(_url(endpoint), content="id=tr_WDqYK6vllg", headers=FORM)
    await dispatcher.drain()

    # The provider never sees the forwarding outcome
    assert response.json() == {"ok": True}
    [log] = await fetch_logs(db_session, endpoint.id)
    assert log.status == WebhookLogStatus.SUCCESS
    assert log.forwarding_status == 503
    assert log.forwarding_error == "HTTP 503: maintenance"


@pytest.mark.asyncio
async def test_classic_webhook_forwarding_disabled_not_forwarded(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_api_key,
    make_endpoint,
    fake_mollie: FakeMollie,
    forward_target: RecordingTarget,
    dispatcher: ForwardingDispatcher,
) -> None:
    api_key = await make_api_key()
    endpoint = await make_endpoint(api_key_id=api_key.id, forwarding_enabled=False, forwarding_url=FORWARD_URL)
    fake_mollie.resources["tr_WDqYK6vllg"] = {"id": "tr_WDqYK6vllg"}

    await async_client.post(_url(endpoint), content="id=tr_WDqYK6vllg", headers=FORM)
    await dispatcher.drain()

    assert forward_target.requests == []
    [log] = await fetch_logs(db_session, endpoint.id)
    assert log.forwarded_at is None


@pytest.mark.asyncio
async def test_classic_webhook_unknown_endpoint(async_client: AsyncClient) -> None:
    response = await async_client.post(f"/webhooks/classic/{OWNER_ID}/{uuid4()}", content="id=tr_x", headers=FORM)

    assert response.status_code == 404
    assert response.json() == {"error": "Endpoint not found"}


@pytest.mark.asyncio
async def test_classic_webhook_malformed_ids_answer_not_found(async_client: AsyncClient) -> None:
    response = await async_client.post("/webhooks/classic/not-a-uuid/also-not", content="id=tr_x", headers=FORM)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_classic_webhook_wrong_owner_in_url(
    async_client: AsyncClient, db_session: AsyncSession, classic_endpoint
) -> None:
    response = await async_client.post(
        f"/webhooks/classic/{OTHER_OWNER_ID}/{classic_endpoint.id}", content="id=tr_x", headers=FORM
    )

    assert response.status_code == 404
    assert await fetch_logs(db_session, classic_endpoint.id) == []


@pytest.mark.asyncio
async def test_nextgen_endpoint_not_reachable_on_classic_route(
    async_client: AsyncClient, db_session: AsyncSession, make_endpoint
) -> None:
    endpoint = await make_endpoint(type=EndpointType.NEXTGEN, shared_secret="whsec")

    response = await async_client.post(_url(endpoint), content="id=tr_x", headers=FORM)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_classic_webhook_disabled_endpoint(
    async_client: AsyncClient, db_session: AsyncSession, make_api_key, make_endpoint
) -> None:
    api_key = await make_api_key()
    endpoint = await make_endpoint(api_key_id=api_key.id, is_enabled=False)

    response = await async_client.post(_url(endpoint), content="id=tr_WDqYK6vllg", headers=FORM)

    assert response.status_code == 403
    assert response.json() == {"error": "Endpoint is disabled"}
    assert await fetch_logs(db_session, endpoint.id) == []


@pytest.mark.asyncio
async def test_classic_webhook_get_reports_active(async_client: AsyncClient) -> None:
    response = await async_client.get(f"/webhooks/classic/{OWNER_ID}/{uuid4()}")

    assert response.status_code == 200
    assert response.json() == {"message": "Classic webhook endpoint is active", "method": "POST"}
