"""Global exception handlers for consistent error responses.

Every failure leaving the HTTP layer is rendered as JSON:
- RateLimitExceeded → 429 with X-RateLimit-* / Retry-After headers
- AuthenticationAppError → 403, any other AppError → 400
- ConfigurationAppError / LimiterDestroyedError → 500; these are operator
  faults, so details go to the log and never to the client
- Unexpected Exception → generic 500 (safety net)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from gatekeeper.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    LimiterDestroyedError,
    RateLimitExceeded,
)
from gatekeeper.core.headers import HTTP_TOO_MANY_REQUESTS, render_decision
from gatekeeper.core.logging import get_request_id

logger = logging.getLogger(__name__)

_OPERATOR_ERRORS = (ConfigurationAppError, LimiterDestroyedError)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, _OPERATOR_ERRORS):
        return 500
    if isinstance(exc, AuthenticationAppError):
        return 403
    return 400


def _internal_error_response() -> JSONResponse:
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


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a denied admission decision as HTTP 429.

    The body is the standard ``{"success": false, "message": ...}`` payload
    and the headers always include ``Retry-After``.
    """
    decision = render_decision(exc.result)
    return JSONResponse(
        status_code=decision.status_code or HTTP_TOO_MANY_REQUESTS,
        content=decision.body,
        headers=decision.headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the status code for the error class.
    """
    status_code = _status_for(exc)

    if status_code == 500:
        logger.error(
            "app_error_operator",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "error_details": exc.details,
                "request_path": request.url.path,
            },
        )
        return _internal_error_response()

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors; no stack traces reach the client."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return _internal_error_response()


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitExceeded)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
