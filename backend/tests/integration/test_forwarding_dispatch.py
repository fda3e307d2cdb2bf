"""Integration tests for background forwarding and outcome recording."""
import asyncio
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookrelay.services.forwarding_service import Forwarder, ForwardingConfig, ForwardingDispatcher, ForwardingResult
from hookrelay.services.webhook_log_service import WebhookLogService
from utils.db import reload
from utils.factories import FORWARD_URL
from utils.fakes import RecordingTarget


@pytest.mark.asyncio
async def test_dispatch_records_outcome_on_log(
    db_session: AsyncSession,
    make_endpoint,
    make_log,
    dispatcher: ForwardingDispatcher,
    forward_target: RecordingTarget,
) -> None:
    endpoint = await make_endpoint(forwarding_enabled=True, forwarding_url=FORWARD_URL)
    log = await make_log(endpoint)

    task = dispatcher.dispatch(log.id, log.raw_body, "application/x-www-form-urlencoded", ForwardingConfig.for_endpoint(endpoint))
    assert dispatcher.pending == 1

    await dispatcher.drain()

    assert task.done()
    assert dispatcher.pending == 0
    assert forward_target.requests[0].content == log.raw_body.encode("utf-8")

    log = await reload(db_session, log)
    assert log.forwarded_at is not None
    assert log.forwarding_url == FORWARD_URL
    assert log.forwarding_status == 200
    assert log.forwarding_error is None


@pytest.mark.asyncio
async def test_forwarding_fields_written_once(db_session: AsyncSession, make_endpoint, make_log) -> None:
    """Test that a second outcome for the same log is not recorded."""
    endpoint = await make_endpoint()
    log = await make_log(endpoint)
    service = WebhookLogService(db_session)

    first = await service.record_forwarding(log.id, FORWARD_URL, ForwardingResult(success=True, status=200, time_ms=12))
    await db_session.commit()
    second = await service.record_forwarding(
        log.id, "http://other.test/", ForwardingResult(success=False, status=500, time_ms=40, error="HTTP 500: ")
    )
    await db_session.commit()

    assert first is True
    assert second is False

    log = await reload(db_session, log)
    assert log.forwarding_url == FORWARD_URL
    assert log.forwarding_status == 200


@pytest.mark.asyncio
async def test_failed_outcome_update_is_dropped(
    session_factory: async_sessionmaker[AsyncSession],
    forward_target: RecordingTarget,
) -> None:
    """Test that a forward for a log that no longer exists finishes quietly."""
    dispatcher = ForwardingDispatcher(session_factory, Forwarder(forward_target.transport))

    dispatcher.dispatch(uuid4(), "{}", "application/json", ForwardingConfig(url=FORWARD_URL))
    await dispatcher.drain()

    assert len(forward_target.requests) == 1
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_outcome_update_error_is_logged_and_dropped(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    make_endpoint,
    make_log,
    forward_target: RecordingTarget,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test that a store failure while recording the outcome does not escape the task."""

    async def store_unavailable(self, log_id, url, result) -> bool:
        raise OperationalError("UPDATE webhook_logs", {}, Exception("database is locked"))

    monkeypatch.setattr(WebhookLogService, "record_forwarding", store_unavailable)
    dispatcher = ForwardingDispatcher(session_factory, Forwarder(forward_target.transport))
    endpoint = await make_endpoint(forwarding_enabled=True, forwarding_url=FORWARD_URL)
    log = await make_log(endpoint)

    task = dispatcher.dispatch(log.id, log.raw_body, "application/x-www-form-urlencoded", ForwardingConfig.for_endpoint(endpoint))
    await dispatcher.drain()

    assert task.done()
    assert task.exception() is None
    assert dispatcher.pending == 0
    assert len(forward_target.requests) == 1

    log = await reload(db_session, log)
    assert log.forwarded_at is None
    assert log.forwarding_url is None
    assert log.forwarding_status is None


@pytest.mark.asyncio
async def test_dispatch_bounds_concurrency(
    session_factory: async_sessionmaker[AsyncSession],
    make_endpoint,
    make_log,
) -> None:
    in_flight = 0
    peak = 0

    async def slow(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return httpx.Response(200)

    target = RecordingTarget(slow)
    dispatcher = ForwardingDispatcher(session_factory, Forwarder(target.transport), max_concurrency=2)
    endpoint = await make_endpoint(forwarding_enabled=True, forwarding_url=FORWARD_URL)
    logs = [await make_log(endpoint) for _ in range(6)]

    for log in logs:
        dispatcher.dispatch(log.id, log.raw_body, "application/x-www-form-urlencoded", ForwardingConfig.for_endpoint(endpoint))
    await dispatcher.drain()

    assert len(target.requests) == 6
    assert peak == 2
