"""Structured error response schemas."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error")
    value: Any | None = Field(default=None, description="Offending value, for request validation errors")


class ErrorResponse(BaseModel):
    """Standard error body returned for every failed request."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "ImmutabilityError",
                "message": "Invoice INV-000042 is paid and cannot be modified",
                "details": [
                    {
                        "code": "immutable",
                        "message": "Invoice INV-000042 is paid and cannot be modified",
                        "field": None,
                    }
                ],
                "remediation": "Cannot modify a paid invoice. Issue a credit note instead.",
                "request_id": "0f6c1d3e-8a55-4c1e-9f7e-3b1f4f0a9c21",
                "timestamp": "2026-03-02T09:15:00Z",
            }
        }
    )

    error: str = Field(..., description="Error type (e.g. 'ValidationError', 'NotFoundError')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(default=None, description="Detailed error information")
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")


class ErrorCode:
    """Error codes not carried by a BillingError subclass."""

    REQUEST_VALIDATION = "request_validation_error"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_UUID = "invalid_uuid"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    INVALID_DECIMAL = "invalid_decimal"
    DATABASE_ERROR = "database_error"
    INTERNAL_ERROR = "internal_error"


REMEDIATION_HINTS = {
    "validation_error": "Correct the highlighted field and resubmit.",
    "not_found": "Verify the identifier is correct and the record exists.",
    "forbidden": "Ask an administrator to perform this action.",
    "immutable": "This record can no longer change. Issue a credit note to correct it.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
    ErrorCode.INTERNAL_ERROR: "Please contact support with the request ID.",
}
