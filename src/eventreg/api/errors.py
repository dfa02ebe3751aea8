"""Standardized error handling for the eventreg API."""

import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from eventreg.services.errors import InvalidCursorError, TransientStoreError

logger = logging.getLogger(__name__)

class ErrorCode(StrEnum):
    """Standard error codes for API responses."""

    # Resource errors
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"

    # Duplicate errors
    DUPLICATE_REGISTRATION = "DUPLICATE_REGISTRATION"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CURSOR = "INVALID_CURSOR"

    # Business logic errors
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    EVENT_ALREADY_STARTED = "EVENT_ALREADY_STARTED"

    # Generic errors
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"


class APIError(Exception):
    """Base exception for API errors with structured responses."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=404, details=details)


class DuplicateError(APIError):
    """Duplicate resource error."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=409, details=details)


class BadRequestError(APIError):
    """Bad request error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BAD_REQUEST,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=400, details=details)


class CapacityExceededError(APIError):
    """A registration or event-creation limit has been reached."""

    def __init__(self, message: str, limit: int):
        super().__init__(
            ErrorCode.CAPACITY_EXCEEDED, message, status_code=409, details={"limit": limit}
        )


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that adds a unique request ID to each request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id(request: Request) -> str:
    """Get the request ID from the request state."""
    return getattr(request.state, "request_id", str(uuid4()))


def build_error_response(
    code: str,
    message: str,
    request_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a standardized error response."""
    response = {
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
            "timestamp": datetime.now(UTC).isoformat(),
        }
    }
    if details:
        response["error"]["details"] = details
    return response


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            code=exc.code,
            message=exc.message,
            request_id=get_request_id(request),
            details=exc.details,
        ),
    )


async def invalid_cursor_handler(request: Request, exc: InvalidCursorError) -> JSONResponse:
    """Handle a cursor that cannot be decoded or belongs to another ordering."""
    return JSONResponse(
        status_code=400,
        content=build_error_response(
            code=ErrorCode.INVALID_CURSOR,
            message=str(exc),
            request_id=get_request_id(request),
        ),
    )


async def store_unavailable_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
    """Handle connectivity and timeout failures from the record store."""
    response = JSONResponse(
        status_code=503,
        content=build_error_response(
            code=ErrorCode.STORE_UNAVAILABLE,
            message="The record store is temporarily unavailable",
            request_id=get_request_id(request),
        ),
    )
    response.headers["Retry-After"] = "5"
    return response


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException with standardized format."""
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", ErrorCode.BAD_REQUEST)
        message = exc.detail.get("message", str(exc.detail))
        details = exc.detail.get("details")
    else:
        code_map = {
            404: ErrorCode.NOT_FOUND,
            422: ErrorCode.VALIDATION_ERROR,
        }
        code = code_map.get(exc.status_code, ErrorCode.BAD_REQUEST)
        message = str(exc.detail)
        details = None

    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            code=code,
            message=message,
            request_id=get_request_id(request),
            details=details,
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the failure and return an opaque 500."""
    request_id = get_request_id(request)
    logger.exception(
        "Unhandled error on %s %s (request %s)", request.method, request.url.path, request_id
    )
    return JSONResponse(
        status_code=500,
        content=build_error_response(
            code=ErrorCode.INTERNAL_ERROR,
            message="An unexpected error occurred",
            request_id=request_id,
        ),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors with standardized format."""
    # Transform Pydantic errors into a more readable format
    field_errors = []
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors.append(
            {
                "field": field_path,
                "message": error["msg"],
                "type": error["type"],
            }
        )

    return JSONResponse(
        status_code=422,
        content=build_error_response(
            code=ErrorCode.VALIDATION_ERROR,
            message="Request validation failed",
            request_id=get_request_id(request),
            details={"errors": field_errors},
        ),
    )
