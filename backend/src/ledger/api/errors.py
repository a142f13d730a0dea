"""Exception handlers that render every failure as an ErrorResponse envelope."""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException

from ledger.config import settings
from ledger.exceptions import LedgerError
from ledger.middleware.logging import REQUEST_ID_HEADER, new_request_id
from ledger.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse

logger = structlog.get_logger(__name__)

# pydantic error types mapped onto API error codes
VALIDATION_CODES = {
    "uuid_parsing": ErrorCode.INVALID_UUID,
    "uuid_type": ErrorCode.INVALID_UUID,
    "enum": ErrorCode.INVALID_ENUM_VALUE,
    "missing": ErrorCode.MISSING_REQUIRED_FIELD,
    "int_parsing": ErrorCode.INVALID_AMOUNT,
    "greater_than_equal": ErrorCode.INVALID_AMOUNT,
}

HTTP_ERRORS = {
    status.HTTP_401_UNAUTHORIZED: ("Unauthorized", ErrorCode.UNAUTHORIZED),
    status.HTTP_403_FORBIDDEN: ("Forbidden", ErrorCode.INSUFFICIENT_PERMISSIONS),
    status.HTTP_404_NOT_FOUND: ("NotFound", ErrorCode.NOT_FOUND),
}


def request_id_of(request: Request) -> str:
    """Request id bound by LoggingMiddleware, or the caller's header."""
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get(REQUEST_ID_HEADER)
        or new_request_id()
    )


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: list[ErrorDetail],
    remediation: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Serialize an ErrorResponse for the given request."""
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        remediation=remediation,
        request_id=request_id_of(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Domain errors carry their own status and code."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("ledger_error", error=exc.error, code=exc.code, status_code=exc.status_code, error_message=exc.message)

    return error_response(
        request,
        exc.status_code,
        exc.error,
        exc.message,
        [ErrorDetail(code=exc.code, message=exc.message)],
        REMEDIATION_HINTS.get(exc.code),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one detail per invalid field."""
    details = [
        ErrorDetail(
            code=VALIDATION_CODES.get(error["type"], "validation_error"),
            message=error["msg"],
            field=".".join(str(loc) for loc in error["loc"]),
            value=error.get("input"),
        )
        for error in exc.errors()
    ]
    logger.warning("validation_error", error_count=len(details), fields=[detail.field for detail in details])

    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details,
        "Check the API documentation for correct request format at /docs",
    )


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Authentication and routing failures raised as HTTPException."""
    error, code = HTTP_ERRORS.get(exc.status_code, ("HTTPError", ErrorCode.INVALID_REQUEST))
    message = exc.detail if isinstance(exc.detail, str) else error

    return error_response(
        request,
        exc.status_code,
        error,
        message,
        [ErrorDetail(code=code, message=message)],
        REMEDIATION_HINTS.get(code),
        headers=getattr(exc, "headers", None),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """A unique constraint race that no service translated."""
    logger.warning("integrity_error", error_message=str(exc.orig))

    return error_response(
        request,
        status.HTTP_409_CONFLICT,
        "Conflict",
        "The request conflicts with existing data",
        [ErrorDetail(code=ErrorCode.DUPLICATE_RESOURCE, message="Duplicate or conflicting record")],
        REMEDIATION_HINTS.get(ErrorCode.DUPLICATE_RESOURCE),
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database unreachable or misbehaving: 503 with a retry hint."""
    logger.error("database_error", error_type=type(exc).__name__, error_message=str(exc))

    # Driver messages can contain SQL and connection details
    message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DatabaseError",
        "A database error occurred",
        [ErrorDetail(code=ErrorCode.DATABASE_ERROR, message=message)],
        REMEDIATION_HINTS.get(ErrorCode.DATABASE_ERROR),
        headers={"Retry-After": "30"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else: log the traceback, return a generic 500."""
    logger.exception("unhandled_exception", exception_type=type(exc).__name__, exc_info=exc)

    message = str(exc) if settings.debug else "Internal server error"
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
        [ErrorDetail(code=ErrorCode.INTERNAL_ERROR, message=message)],
        "Please contact support with the request ID",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers, most specific first."""
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
