"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- RateLimitExceededError → 429 with Retry-After and X-RateLimit-* headers
- Other AppError subclasses → appropriate HTTP status (400, 403, 500, 503)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from quotaguard.core.errors import (
    AppError,
    AuthenticationAppError,
    QuotaStoreError,
    RateLimitExceededError,
    UnknownPolicyError,
)
from quotaguard.core.logging import get_request_id

logger = logging.getLogger(__name__)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Render an exhausted quota as HTTP 429 Too Many Requests.

    The body carries the machine code ``RATE_LIMIT_EXCEEDED``, the localized
    message and the retry hints; headers carry the same hints for clients
    that only inspect headers.

    Args:
        request: FastAPI request object.
        exc: RateLimitExceededError raised by the rate limit dependency.

    Returns:
        JSONResponse with status 429.
    """
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "request_id": get_request_id(),
                "retryAfter": exc.retry_after,
                "resetAt": exc.reset_at,
            }
        },
        headers=exc.headers,
    )


# Most specific class first; anything else is a client error.
_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (AuthenticationAppError, 403),
    (QuotaStoreError, 503),
    (UnknownPolicyError, 500),
)


def _status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render domain errors as ``{"error": {...}}`` with a mapped status.

    Quota store errors only reach this handler from admin operations; the
    limiter converts them into fallback decisions everywhere else.
    """
    if isinstance(exc, RateLimitExceededError):
        return await rate_limit_exceeded_handler(request, exc)

    status_code = _status_for(exc)
    request_id = get_request_id()

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    error_content = {"code": exc.code, "message": exc.message, "request_id": request_id}
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors; never leaks the exception to clients."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register the rate limit, domain and fallback handlers on ``app``."""
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
