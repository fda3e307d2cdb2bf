"""Structured error response schemas."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models.base import utcnow


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure for the operator API."""

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'NotFound', 'Forbidden')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(
        default=None, description="Detailed error information (for validation errors)"
    )
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=utcnow, description="Error timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "ValidationError",
                "message": "Invalid request data",
                "details": [
                    {
                        "code": "value_too_large",
                        "message": "Input should be less than or equal to 200",
                        "field": "query.limit",
                        "value": 500,
                    }
                ],
                "remediation": "Check the request parameters against the API documentation",
                "request_id": "6f1c2a9e-1d4b-4a57-9d0e-3e0b0c7e9f12",
                "timestamp": "2026-01-15T10:30:00Z",
            }
        }
    )


class ValidationErrorResponse(ErrorResponse):
    """Validation error response with field-level details."""

    error: str = Field(default="ValidationError", description="Error type")


class InternalServerErrorResponse(ErrorResponse):
    """Internal server error response."""

    error: str = Field(default="InternalServerError", description="Error type")


class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400/422)
    INVALID_UUID = "invalid_uuid"
    INVALID_DATE = "invalid_date"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    VALUE_TOO_SMALL = "value_too_small"
    VALUE_TOO_LARGE = "value_too_large"
    INVALID_VALUE = "invalid_value"

    # Not found errors (404)
    LOG_NOT_FOUND = "log_not_found"
    ENDPOINT_NOT_FOUND = "endpoint_not_found"

    # Authorization errors (403)
    LOG_ACCESS_DENIED = "log_access_denied"

    # External service errors (503)
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Pydantic error type -> error code
VALIDATION_ERROR_CODES = {
    "missing": ErrorCode.MISSING_REQUIRED_FIELD,
    "uuid_parsing": ErrorCode.INVALID_UUID,
    "uuid_type": ErrorCode.INVALID_UUID,
    "datetime_parsing": ErrorCode.INVALID_DATE,
    "datetime_from_date_parsing": ErrorCode.INVALID_DATE,
    "enum": ErrorCode.INVALID_ENUM_VALUE,
    "literal_error": ErrorCode.INVALID_ENUM_VALUE,
    "greater_than_equal": ErrorCode.VALUE_TOO_SMALL,
    "greater_than": ErrorCode.VALUE_TOO_SMALL,
    "less_than_equal": ErrorCode.VALUE_TOO_LARGE,
    "less_than": ErrorCode.VALUE_TOO_LARGE,
}

# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INVALID_UUID: "Provide a valid UUID identifier",
    ErrorCode.INVALID_DATE: "Use an ISO 8601 datetime (e.g., 2026-01-15T10:30:00)",
    ErrorCode.LOG_NOT_FOUND: "Verify the log ID is correct and belongs to your account",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
