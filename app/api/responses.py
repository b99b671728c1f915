"""Error envelope construction and exception handlers."""

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[int, ErrorCode] = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    413: ErrorCode.PAYLOAD_TOO_LARGE,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
}


def new_request_id() -> str:
    return str(uuid.uuid4())


def error_response(
    status_code: int,
    message: str,
    code: ErrorCode,
    *,
    details: str | None = None,
    headers: dict[str, str] | None = None,
    method: str | None = None,
    path: str | None = None,
) -> JSONResponse:
    """
    Build the JSON error envelope {error, code, details?, requestId}.

    Every call gets a fresh requestId, which is also logged so a client report
    can be matched to the server log line (WARNING for 4xx, ERROR for 5xx).
    """
    request_id = new_request_id()
    body: dict[str, Any] = {"error": message, "code": str(code)}
    if details:
        body["details"] = details
    body["requestId"] = request_id

    log_extra = {
        "request_id": request_id,
        "status_code": status_code,
        "error_code": str(code),
        "method": method,
        "path": path,
    }
    if status_code >= 500:
        logger.error("Request failed: %s", message, extra=log_extra)
    else:
        logger.warning("Request rejected: %s", message, extra=log_extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _format_loc(loc: tuple[Any, ...]) -> str:
    # Drop the leading "body"/"query"/"path" marker.
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return error_response(
        exc.status_code,
        exc.message,
        exc.code,
        details=exc.details,
        headers=exc.headers,
        method=request.method,
        path=request.url.path,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    missing = [_format_loc(tuple(e.get("loc", ()))) for e in errors if e.get("type") == "missing"]
    if missing:
        return error_response(
            400,
            f"Missing required field: {missing[0]}",
            ErrorCode.MISSING_FIELD,
            details=", ".join(missing),
            method=request.method,
            path=request.url.path,
        )
    details = "; ".join(
        f"{_format_loc(tuple(e.get('loc', ())))}: {e.get('msg', 'invalid')}" for e in errors
    )
    return error_response(
        400,
        "Invalid request",
        ErrorCode.VALIDATION_ERROR,
        details=details or None,
        method=request.method,
        path=request.url.path,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR
    else:
        code = _STATUS_CODES.get(exc.status_code, ErrorCode.VALIDATION_ERROR)
    return error_response(
        exc.status_code,
        str(exc.detail),
        code,
        headers=getattr(exc, "headers", None),
        method=request.method,
        path=request.url.path,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internal details are logged, never returned.
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(
        500,
        "Internal server error",
        ErrorCode.INTERNAL_ERROR,
        method=request.method,
        path=request.url.path,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
