"""Forwarding of received webhooks to a user-configured downstream URL."""
import asyncio
import time
from dataclasses import dataclass
from typing import Mapping
from uuid import UUID

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookrelay.config import settings
from hookrelay.metrics import forwarding_attempts_total, forwarding_duration_seconds
from hookrelay.models.webhook_endpoint import DEFAULT_FORWARDING_TIMEOUT_MS, EndpointType, WebhookEndpoint
from hookrelay.utils.payload import FORM_CONTENT_TYPE, JSON_CONTENT_TYPE, get_header

logger = structlog.get_logger(__name__)

USER_AGENT = "Mollie-Webhook-Relay/1.0"
ERROR_BODY_LIMIT = 200


@dataclass(frozen=True)
class ForwardingConfig:
    """Where and how to deliver one forward."""

    url: str
    headers: Mapping[str, str] | None = None
    timeout_ms: int = DEFAULT_FORWARDING_TIMEOUT_MS

    @classmethod
    def for_endpoint(cls, endpoint: WebhookEndpoint, url: str | None = None) -> "ForwardingConfig":
        return cls(
            url=url or endpoint.forwarding_url,
            headers=endpoint.forwarding_headers or None,
            timeout_ms=endpoint.forwarding_timeout_ms or settings.default_forwarding_timeout_ms,
        )


@dataclass(frozen=True)
class ForwardingResult:
    """Outcome of one forwarding attempt."""

    success: bool
    time_ms: int
    status: int | None = None
    error: str | None = None


def resolve_content_type(headers: Mapping[str, str] | None, endpoint_type: EndpointType) -> str:
    """Content-Type of the original delivery, or the protocol default."""
    content_type = get_header(headers, "content-type")
    if content_type:
        return content_type
    return FORM_CONTENT_TYPE if endpoint_type == EndpointType.CLASSIC else JSON_CONTENT_TYPE


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class Forwarder:
    """
    POSTs a raw webhook body to a target URL.

    Automatic redirects are disabled because HTTP clients turn a redirected
    POST into a GET. A single 3xx hop with a Location header is followed by
    hand with a new POST, within what is left of the timeout. forward()
    never raises.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        """
        Initialize forwarder.

        Args:
            transport: Optional httpx transport (used by tests)
        """
        self._transport = transport

    async def forward(self, raw_body: str | bytes, content_type: str, config: ForwardingConfig) -> ForwardingResult:
        """
        Forward a webhook body.

        Args:
            raw_body: Body exactly as received from the provider
            content_type: Content-Type to send
            config: Target URL, extra headers and timeout

        Returns:
            ForwardingResult describing the terminal response
        """
        start = time.monotonic()
        timeout_s = config.timeout_ms / 1000
        headers = {
            "Content-Type": content_type,
            "User-Agent": USER_AGENT,
            **(config.headers or {}),
        }

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                follow_redirects=False,
                timeout=timeout_s,
            ) as client:
                response = await asyncio.wait_for(
                    client.post(config.url, content=raw_body, headers=headers),
                    timeout=timeout_s,
                )

                location = response.headers.get("location")
                if 300 <= response.status_code < 400 and location:
                    remaining = timeout_s - (time.monotonic() - start)
                    if remaining <= 0:
                        raise asyncio.TimeoutError()

                    target = response.url.join(location)
                    logger.info(
                        "forwarding_redirect_followed",
                        url=config.url,
                        location=str(target),
                        status_code=response.status_code,
                    )
                    redirect_response = await asyncio.wait_for(
                        client.post(target, content=raw_body, headers=headers, timeout=remaining),
                        timeout=remaining,
                    )
                    result = self._result_from_response(redirect_response, start, after_redirect=True)
                else:
                    result = self._result_from_response(response, start)

        except (asyncio.TimeoutError, httpx.TimeoutException):
            result = ForwardingResult(
                success=False,
                time_ms=_elapsed_ms(start),
                error=f"Timeout after {config.timeout_ms}ms",
            )
            forwarding_attempts_total.labels(outcome="timeout").inc()
        except httpx.HTTPError as e:
            result = ForwardingResult(
                success=False,
                time_ms=_elapsed_ms(start),
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
            )
            forwarding_attempts_total.labels(outcome="transport_error").inc()
        except Exception as e:
            logger.exception("forwarding_unexpected_error", url=config.url)
            result = ForwardingResult(
                success=False,
                time_ms=_elapsed_ms(start),
                error=str(e) or "Unknown forwarding error",
            )
            forwarding_attempts_total.labels(outcome="transport_error").inc()
        else:
            forwarding_attempts_total.labels(outcome="success" if result.success else "http_error").inc()

        forwarding_duration_seconds.observe(result.time_ms / 1000)
        return result

    @staticmethod
    def _result_from_response(response: httpx.Response, start: float, after_redirect: bool = False) -> ForwardingResult:
        time_ms = _elapsed_ms(start)

        if 200 <= response.status_code < 300:
            return ForwardingResult(success=True, status=response.status_code, time_ms=time_ms)

        hop = " (after redirect)" if after_redirect else ""
        return ForwardingResult(
            success=False,
            status=response.status_code,
            time_ms=time_ms,
            error=f"HTTP {response.status_code}{hop}: {response.text[:ERROR_BODY_LIMIT]}",
        )


class ForwardingDispatcher:
    """
    Runs forwards as detached background tasks.

    The intake response never waits on a forward. Each task delivers the body,
    then records the outcome on the already-written log with its own session.
    A failed update is logged and dropped. A semaphore bounds how many
    deliveries are in flight at once.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        forwarder: Forwarder | None = None,
        max_concurrency: int | None = None,
    ):
        self.session_factory = session_factory
        self.forwarder = forwarder or Forwarder()
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.forwarding_max_concurrency)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of forwards not yet finished."""
        return len(self._tasks)

    def dispatch(self, log_id: UUID, raw_body: str | bytes, content_type: str, config: ForwardingConfig) -> asyncio.Task:
        """
        Schedule a forward and return immediately.

        Args:
            log_id: Log entry that receives the forwarding outcome
            raw_body: Body to forward
            content_type: Content-Type to send
            config: Forwarding target

        Returns:
            The background task
        """
        task = asyncio.create_task(self._deliver(log_id, raw_body, content_type, config))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info("forwarding_dispatched", log_id=str(log_id), url=config.url)
        return task

    async def _deliver(self, log_id: UUID, raw_body: str | bytes, content_type: str, config: ForwardingConfig) -> None:
        async with self._semaphore:
            result = await self.forwarder.forward(raw_body, content_type, config)

        logger.info(
            "forwarding_completed",
            log_id=str(log_id),
            url=config.url,
            success=result.success,
            status_code=result.status,
            time_ms=result.time_ms,
            error=result.error,
        )

        # Imported here to avoid a circular import with the log service
        from hookrelay.services.webhook_log_service import WebhookLogService

        try:
            async with self.session_factory() as session:
                await WebhookLogService(session).record_forwarding(log_id, config.url, result)
                await session.commit()
        except Exception as e:
            logger.error(
                "forwarding_result_update_failed",
                log_id=str(log_id),
                error=str(e),
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for every in-flight forward to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
