"""Error envelope returned by every failing endpoint, and the codes it carries."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ledger.utils.dates import utcnow


class ErrorCode:
    """Machine-readable codes placed in ``ErrorDetail.code``."""

    # 400 / 422
    INVALID_REQUEST = "invalid_request"
    INVALID_UUID = "invalid_uuid"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    SOURCE_MISMATCH = "source_mismatch"
    UNSUPPORTED_SOURCE = "unsupported_source"

    # 401 / 403
    UNAUTHORIZED = "unauthorized"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"

    # 402 / 409
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    INVOICE_ALREADY_VOID = "invoice_already_void"
    CONCURRENT_RENEWAL = "concurrent_renewal"
    DUPLICATE_RESOURCE = "duplicate_resource"

    # 404
    NOT_FOUND = "not_found"
    PLAN_NOT_FOUND = "plan_not_found"
    PROFILE_NOT_FOUND = "profile_not_found"
    SUBSCRIPTION_NOT_FOUND = "subscription_not_found"
    INVOICE_NOT_FOUND = "invoice_not_found"
    ORDER_NOT_FOUND = "order_not_found"
    STOCK_SOURCE_NOT_FOUND = "stock_source_not_found"

    # 5xx and upstream
    DATABASE_ERROR = "database_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    EXTERNAL_SERVICE_ERROR = "external_service_error"
    INTERNAL_ERROR = "internal_error"


REMEDIATION_HINTS = {
    ErrorCode.INVALID_UUID: "Provide a valid UUID identifier",
    ErrorCode.UNAUTHORIZED: "Sign in again and retry with a valid bearer token",
    ErrorCode.INSUFFICIENT_PERMISSIONS: "Ask an operator to grant the admin role",
    ErrorCode.INSUFFICIENT_BALANCE: "Top up points or subscribe to a plan before ordering.",
    ErrorCode.PLAN_NOT_FOUND: "Choose one of the plans returned by GET /v1/billing/plans",
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "Subscribe to a plan first",
    ErrorCode.INVOICE_ALREADY_VOID: "Voided invoices cannot be paid. Create a new invoice instead.",
    ErrorCode.CONCURRENT_RENEWAL: "Another renewal run already advanced this subscription",
    ErrorCode.SOURCE_MISMATCH: "Send either a source URL or a matching site and id",
    ErrorCode.UNSUPPORTED_SOURCE: "Paste a link from a supported stock site",
    ErrorCode.DUPLICATE_RESOURCE: "The resource already exists; fetch it instead of creating it again",
    ErrorCode.STOCK_SOURCE_NOT_FOUND: "Use a key listed by GET /v1/admin/stock-sources",
    ErrorCode.EXTERNAL_SERVICE_ERROR: "The fulfillment provider is temporarily unavailable. Please try again later.",
    ErrorCode.SERVICE_UNAVAILABLE: "The billing catalog is not provisioned yet. Please try again later.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}


class ErrorDetail(BaseModel):
    """One problem with the request; validation errors name the field."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Offending field, for validation errors")
    value: Any | None = Field(default=None, description="Rejected input, for validation errors")


class ErrorResponse(BaseModel):
    """Body of every non-2xx JSON response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "InsufficientBalance",
                "message": "Insufficient balance to complete this purchase.",
                "details": [
                    {
                        "code": "insufficient_balance",
                        "message": "Insufficient balance to complete this purchase.",
                    }
                ],
                "remediation": "Top up points or subscribe to a plan before ordering.",
                "request_id": "req_1234567890ab",
                "timestamp": "2025-01-15T10:30:00",
            }
        }
    )

    error: str = Field(..., description="Error class, e.g. NotFound or InsufficientBalance")
    message: str
    details: list[ErrorDetail] = Field(default_factory=list)
    remediation: str | None = Field(default=None, description="What the caller can do about it")
    request_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
