"""Domain errors raised by ledger services.

Each error carries the HTTP status and error code that the API exception
handler renders. Workers catch them per item and record the message.
"""
from typing import Optional

from ledger.schemas.error import ErrorCode


class LedgerError(Exception):
    """Base class for all ledger domain errors."""

    status_code = 500
    error = "LedgerError"
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class InvalidRequestError(LedgerError):
    """Request is well-formed but semantically invalid."""

    status_code = 400
    error = "InvalidRequest"
    code = ErrorCode.INVALID_REQUEST


class UnauthorizedError(LedgerError):
    """Caller could not be authenticated."""

    status_code = 401
    error = "Unauthorized"
    code = ErrorCode.UNAUTHORIZED


class InsufficientBalanceError(LedgerError):
    """Points balance is lower than the requested debit."""

    status_code = 402
    error = "InsufficientBalance"
    code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, message: str = "Insufficient balance to complete this purchase.") -> None:
        super().__init__(message)


class NotFoundError(LedgerError):
    """Entity does not exist or is not visible to the caller."""

    status_code = 404
    error = "NotFound"
    code = ErrorCode.NOT_FOUND


class ConflictError(LedgerError):
    """Concurrent writer won, or the entity is in a state that forbids the operation."""

    status_code = 409
    error = "Conflict"
    code = ErrorCode.INVALID_STATE_TRANSITION


class UnavailableError(LedgerError):
    """A backing store or catalog is not provisioned."""

    status_code = 503
    error = "ServiceUnavailable"
    code = ErrorCode.SERVICE_UNAVAILABLE


class UpstreamFailureError(LedgerError):
    """
    Fulfillment provider returned an error.

    The provider's status is passed through when it is an HTTP error status
    (400-599); anything else becomes 502.
    """

    error = "UpstreamFailure"
    code = ErrorCode.EXTERNAL_SERVICE_ERROR

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        if upstream_status is not None and 400 <= upstream_status <= 599:
            self.status_code = upstream_status
        else:
            self.status_code = 502
