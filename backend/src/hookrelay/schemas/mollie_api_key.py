"""Pydantic schemas for MollieApiKey model."""

from pydantic import BaseModel, Field

MOLLIE_API_KEY_PATTERN = r"^(test|live)_[A-Za-z0-9]{30}$"


class MollieApiKeyCreate(BaseModel):
    """Schema for registering a Mollie API key."""

    label: str = Field(..., min_length=1, max_length=100, description="Label shown to the owner")
    api_key: str = Field(..., pattern=MOLLIE_API_KEY_PATTERN, description="Mollie API key (test_... or live_...)")
    is_default: bool = Field(default=False, description="Use this key for new classic endpoints")

