"""Service-layer exceptions mapped to HTTP status codes by the API routes."""
from uuid import UUID


class LogNotFoundError(Exception):
    """Raised when a webhook log does not exist or is not visible to the caller."""

    def __init__(self, log_id: UUID | str):
        super().__init__(f"Webhook log {log_id} not found")
        self.log_id = log_id


class LogAccessDeniedError(Exception):
    """Raised when a user acts on a log owned by someone else."""

    def __init__(self, log_id: UUID | str):
        super().__init__(f"Access to webhook log {log_id} denied")
        self.log_id = log_id


class EndpointNotFoundError(Exception):
    """Raised when an endpoint does not exist or belongs to another owner."""

    def __init__(self, endpoint_id: UUID | str):
        super().__init__(f"Webhook endpoint {endpoint_id} not found")
        self.endpoint_id = endpoint_id


class ApiKeyNotFoundError(Exception):
    """Raised when a Mollie API key does not exist or belongs to another owner."""

    def __init__(self, api_key_id: UUID | str):
        super().__init__(f"Mollie API key {api_key_id} not found")
        self.api_key_id = api_key_id
