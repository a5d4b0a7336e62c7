"""
Application Middleware for the photo-sharing API.

Cross-cutting request handling shared by every router.

Key Middleware Components:
- `CorrelationMiddleware`: Assigns a correlation ID to every request (or
  reuses the caller's `X-Correlation-ID` / `X-Request-ID`), exposes it on
  `request.state` and echoes it back in the response headers.
- `ErrorHandlingMiddleware`: Turns `PhotoShareException`s into the JSON error
  envelope with the matching status code, and any other exception into a
  generic 500. Error detail is only included outside production.
- `PerformanceMiddleware`: Logs request start/completion with timings, adds
  an `X-Process-Time` header and flags slow requests.

Ordering: `CorrelationMiddleware` must wrap the others so the correlation ID
is set before anything logs.
"""

import time
import uuid
from typing import Any, Callable, Dict

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .config import get_settings
from .exceptions import PhotoShareException, to_http_exception
from .logging_config import get_logger, set_correlation_id

logger = get_logger("core.middleware")

SLOW_REQUEST_THRESHOLD_SECONDS = 1.0


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for centralized error handling"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except PhotoShareException as e:
            logger.warning(
                f"Application error: {e}",
                extra={
                    "error_type": type(e).__name__,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                },
            )

            http_exc = to_http_exception(e)
            return create_error_response(
                error_type=type(e).__name__,
                error_code=e.error_code,
                message=e.message,
                status_code=http_exc.status_code,
                correlation_id=getattr(request.state, "correlation_id", None),
                details=e.details,
            )

        except Exception as e:
            logger.error(
                f"Unexpected error: {e}",
                extra={
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
                exc_info=True,
            )

            details = None
            if not get_settings().is_production:
                details = {"detail": str(e), "exception": type(e).__name__}

            return create_error_response(
                error_type="InternalServerError",
                error_code="INTERNAL_ERROR",
                message="An unexpected error occurred",
                status_code=500,
                correlation_id=getattr(request.state, "correlation_id", None),
                details=details,
            )


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for performance monitoring and logging"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
                "client_ip": request.client.host if request.client else None,
            },
        )

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": round(process_time * 1000, 2),
            },
        )

        if process_time > SLOW_REQUEST_THRESHOLD_SECONDS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": round(process_time * 1000, 2),
                    "threshold_exceeded": True,
                },
            )

        return response


def create_error_response(
    error_type: str,
    error_code: str,
    message: str,
    status_code: int = 400,
    correlation_id: str = None,
    details: Dict[str, Any] = None,
) -> JSONResponse:
    """Create standardized error response"""

    error_data = {"error": {"type": error_type, "code": error_code, "message": message}}

    if correlation_id:
        error_data["error"]["correlation_id"] = correlation_id

    if details:
        error_data["error"]["details"] = details

    return JSONResponse(status_code=status_code, content=error_data)
