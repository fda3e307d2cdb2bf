"""Mollie API adapter for fetching classic webhook resources."""
import asyncio
from typing import Any, Callable, Protocol

import structlog
from mollie.api.client import Client
from mollie.api.error import Error as MollieError
from mollie.api.error import ResponseError

from hookrelay.config import settings

logger = structlog.get_logger(__name__)

# Resource ID prefix -> resource type
RESOURCE_TYPE_PREFIXES: dict[str, str] = {
    "tr_": "payment",
    "ord_": "order",
    "re_": "refund",
    "sub_": "subscription",
    "mdt_": "mandate",
    "cst_": "customer",
}

UNKNOWN_RESOURCE_TYPE = "unknown"

# Resource types that can be fetched by their ID alone, and the client attribute serving them
_FETCH_RESOURCES: dict[str, str] = {
    "payment": "payments",
    "order": "orders",
    "customer": "customers",
}

# Resource types nested under a parent resource in the Mollie API
_PARENT_REQUIRED: dict[str, str] = {
    "refund": "payment",
    "subscription": "customer",
    "mandate": "customer",
}


def get_resource_type(resource_id: str) -> str:
    """
    Classify a Mollie resource ID by its prefix.

    Args:
        resource_id: Mollie resource ID (e.g., "tr_WDqYK6vllg")

    Returns:
        Resource type, or "unknown" for unmapped prefixes
    """
    for prefix, resource_type in RESOURCE_TYPE_PREFIXES.items():
        if resource_id.startswith(prefix):
            return resource_type
    return UNKNOWN_RESOURCE_TYPE


class MollieAPIError(Exception):
    """Raised when the Mollie API rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceFetcher(Protocol):
    """Anything able to fetch a provider resource by ID."""

    async def fetch_resource(self, resource_id: str) -> dict[str, Any]:
        ...

    async def test_connection(self) -> bool:
        ...


ResourceFetcherFactory = Callable[[str], ResourceFetcher]


class MollieAdapter:
    """Adapter for the Mollie API through the official Python client."""

    def __init__(self, api_key: str, client: Client | None = None):
        """
        Initialize Mollie adapter with a decrypted API key.

        Args:
            api_key: Mollie API key (test_... or live_...)
            client: Preconfigured Mollie client, built from settings when omitted

        Raises:
            MollieAPIError: If the client rejects the key format
        """
        if client is None:
            client = Client(
                api_endpoint=settings.mollie_api_base_url,
                timeout=settings.mollie_api_timeout_seconds,
            )
            try:
                client.set_api_key(api_key)
            except MollieError as e:
                raise MollieAPIError(f"Invalid Mollie API key: {e}") from e
        self.client = client

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        # The client is synchronous; keep it off the event loop
        try:
            return await asyncio.to_thread(func, *args)
        except ResponseError as e:
            raise MollieAPIError(f"Mollie API returned {e.status}: {e}", status_code=e.status) from e
        except MollieError as e:
            raise MollieAPIError(f"Mollie API request failed: {e}") from e

    async def fetch_resource(self, resource_id: str) -> dict[str, Any]:
        """
        Fetch a resource by ID, resolving the API resource from the ID prefix.

        Args:
            resource_id: Mollie resource ID

        Returns:
            The resource as returned by the API

        Raises:
            MollieAPIError: If the type is unknown, needs a parent ID, or the API call fails
        """
        resource_type = get_resource_type(resource_id)

        if resource_type in _PARENT_REQUIRED:
            parent = _PARENT_REQUIRED[resource_type]
            raise MollieAPIError(
                f"{resource_type.capitalize()} ID requires a parent {parent} ID and cannot be fetched directly"
            )

        attribute = _FETCH_RESOURCES.get(resource_type)
        if attribute is None:
            raise MollieAPIError(f"Unknown resource type for ID: {resource_id}")

        logger.debug("mollie_resource_fetch", resource_id=resource_id, resource_type=resource_type)
        resource = await self._call(getattr(self.client, attribute).get, resource_id)
        return dict(resource)

    async def test_connection(self) -> bool:
        """
        Check that the API key is accepted by listing payment methods.

        Returns:
            True if the key works, False otherwise
        """
        try:
            await self._call(self.client.methods.list)
            return True
        except MollieAPIError as e:
            logger.warning("mollie_connection_test_failed", error=str(e))
            return False


def mollie_adapter_factory(api_key: str) -> ResourceFetcher:
    """Default factory used by the classic webhook handler."""
    return MollieAdapter(api_key)
