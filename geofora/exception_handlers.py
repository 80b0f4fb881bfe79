"""
Global Exception Handlers for GeoFora

Every failure leaves the API in one shape:

{
    "error": {
        "status_code": 404,
        "error_code": "RESOURCE_EXPORT_NOT_FOUND",
        "message": "Export with id 'export_1700000000000_ab12cd34e' not found",
        "type": "Not Found",
        "details": {"resource_type": "Export", "resource_id": "export_..."},
        "path": "/api/exports/export_...",
        "request_id": "4f1c..."
    }
}

``details``, ``path`` and ``request_id`` are omitted when empty.
"""

import logging
from typing import Any, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from geofora.exceptions import ErrorCode, GeoForaError
from geofora.middleware.logging import request_id_var

logger = logging.getLogger(__name__)

ERROR_TYPES = {
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
    503: "Service Unavailable",
}

HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_FAILED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    422: ErrorCode.VALIDATION_FAILED,
    500: ErrorCode.INTERNAL_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def get_error_type(status_code: int) -> str:
    return ERROR_TYPES.get(status_code, "Error")


def create_error_response(
    status_code: int,
    message: str,
    error_code: str | ErrorCode | None = None,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> JSONResponse:
    """
    Build the JSON error envelope.

    Args:
        status_code: HTTP status code
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Extra context such as the offending field or resource id
        path: Request path that caused the error
    """
    error: dict[str, Any] = {
        "status_code": status_code,
        "message": message,
        "type": get_error_type(status_code),
    }
    if error_code:
        error["error_code"] = ErrorCode(error_code).value
    if details:
        error["details"] = details
    if path:
        error["path"] = path

    request_id = request_id_var.get("")
    if request_id:
        error["request_id"] = request_id

    return JSONResponse(status_code=status_code, content={"error": error})


def _log_level(status_code: int) -> int:
    return logging.ERROR if status_code >= 500 else logging.WARNING


async def handle_geofora_error(request: Request, exc: GeoForaError) -> JSONResponse:
    """Consent, export, GDPR and breach errors raised by the services."""
    logger.log(
        _log_level(exc.status_code),
        f"{type(exc).__name__}: {exc.message}",
        extra={"status_code": exc.status_code, "error_code": exc.error_code.value, "path": request.url.path},
    )
    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
        path=request.url.path,
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR),
        path=request.url.path,
    )


def _validation_errors(exc: Union[RequestValidationError, PydanticValidationError]) -> list[dict[str, str]]:
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})
    return errors


async def handle_validation_error(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Request bodies and query parameters that fail schema validation."""
    errors = _validation_errors(exc)
    logger.warning(f"Validation error on {request.url.path}: {len(errors)} field(s)")
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code=ErrorCode.VALIDATION_FAILED,
        details={"validation_errors": errors},
        path=request.url.path,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Anything else. The message is generic so internals never reach the caller."""
    logger.error(f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}", exc_info=exc)
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code=ErrorCode.INTERNAL_ERROR,
        path=request.url.path,
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(GeoForaError, handle_geofora_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(PydanticValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
