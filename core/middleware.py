"""
Application Middleware and Error Handling for JukeBoxd.

Cross-cutting request processing: correlation IDs, timing, security headers,
request screening, and the conversion of exceptions into JSON error envelopes.

Key Components:
- `CorrelationMiddleware`: Assigns every request a correlation ID (taken from
  `X-Correlation-ID` / `X-Request-ID` when the client supplies one) and echoes
  it in the response headers. Log records carry it via the logging filter.
- `PerformanceMiddleware`: Logs each request, adds `X-Process-Time`, records
  the request in the metrics collector and warns about slow requests.
- `SecurityHeadersMiddleware`: Adds standard security headers to every response.
- `RequestValidationMiddleware`: Rejects oversized bodies and unsupported
  content types before routing.
- `register_exception_handlers`: Installs handlers turning `JukeBoxdException`,
  HTTP errors, request validation failures and unexpected errors into the
  error envelope:

      {"success": false,
       "error": {"type", "code", "message", "details", "correlation_id"},
       "timestamp": ..., "path": ...}

Rate limiting is not a middleware; routes declare it with the
`core.rate_limiter.RateLimit` dependency.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.exceptions import JukeBoxdException, RateLimitError, status_code_for
from core.logging_config import get_correlation_id, get_logger, set_correlation_id
from core.metrics import RequestMetrics, get_metrics_collector
from core.rate_limiter import client_identifier

logger = get_logger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

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


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for performance monitoring and logging"""

    def __init__(self, app: ASGIApp, slow_threshold: float = SLOW_REQUEST_SECONDS):
        super().__init__(app)
        self.slow_threshold = slow_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_ip": client_identifier(request),
            },
        )

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        duration_ms = round(process_time * 1000, 2)
        response.headers["X-Process-Time"] = str(duration_ms)

        # Route template keeps per-album paths from exploding the endpoint stats
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        get_metrics_collector().record_request(
            RequestMetrics(
                endpoint=endpoint,
                method=request.method,
                status_code=response.status_code,
                duration_ms=duration_ms,
                timestamp=datetime.now(timezone.utc),
                ip_address=client_identifier(request),
            )
        )

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": duration_ms,
            },
        )

        if process_time > self.slow_threshold:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": duration_ms,
                    "threshold_exceeded": True,
                },
            )

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers"""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for header, value in self.HEADERS.items():
            response.headers[header] = value
        return response


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """Middleware for request size and content type screening"""

    ALLOWED_CONTENT_TYPES = (
        "application/json",
        "application/x-www-form-urlencoded",
        "multipart/form-data",
    )

    def __init__(self, app: ASGIApp, max_request_size: int = 10 * 1024 * 1024):
        super().__init__(app)
        self.max_request_size = max_request_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        try:
            body_size = int(content_length) if content_length else 0
        except ValueError:
            return create_error_response(
                "BadRequest",
                "INVALID_CONTENT_LENGTH",
                "Content-Length header is not a number",
                status_code=400,
                path=request.url.path,
            )

        if body_size > self.max_request_size:
            logger.warning(
                f"Request too large: {body_size} bytes",
                extra={
                    "content_length": body_size,
                    "max_size": self.max_request_size,
                    "path": request.url.path,
                },
            )
            return create_error_response(
                "PayloadTooLarge",
                "REQUEST_TOO_LARGE",
                f"Request size exceeds maximum allowed size of {self.max_request_size} bytes",
                status_code=413,
                path=request.url.path,
            )

        # Bodyless writes (logout, unfollow) carry no content type
        if request.method in ("POST", "PUT", "PATCH") and body_size > 0:
            content_type = request.headers.get("content-type", "")
            if not any(allowed in content_type for allowed in self.ALLOWED_CONTENT_TYPES):
                logger.warning(
                    f"Invalid content type: {content_type}",
                    extra={
                        "content_type": content_type,
                        "path": request.url.path,
                        "method": request.method,
                    },
                )
                return create_error_response(
                    "UnsupportedMediaType",
                    "INVALID_CONTENT_TYPE",
                    f"Content type '{content_type}' is not supported",
                    status_code=415,
                    path=request.url.path,
                )

        return await call_next(request)


def create_error_response(
    error_type: str,
    error_code: str,
    message: str,
    status_code: int = 400,
    correlation_id: str = None,
    details: Dict[str, Any] = None,
    path: str = None,
    headers: Dict[str, str] = None,
) -> JSONResponse:
    """Create standardized error response"""
    content = {
        "success": False,
        "error": {
            "type": error_type,
            "code": error_code,
            "message": message,
            "details": details or {},
            "correlation_id": correlation_id or get_correlation_id(),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": path,
    }
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or get_correlation_id()


async def handle_application_error(request: Request, exc: JukeBoxdException) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"Application error: {exc.message}",
        extra={
            "error_type": type(exc).__name__,
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(max(1, int(round(exc.retry_after))))}

    return create_error_response(
        type(exc).__name__,
        exc.error_code,
        exc.message,
        status_code=status_code,
        correlation_id=_correlation_id(request),
        details=exc.details,
        path=request.url.path,
        headers=headers,
    )


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(
        f"HTTP exception: {exc.status_code} - {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return create_error_response(
        "HTTPException",
        f"HTTP_{exc.status_code}",
        str(exc.detail),
        status_code=exc.status_code,
        correlation_id=_correlation_id(request),
        path=request.url.path,
        headers=getattr(exc, "headers", None),
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(location), "message": error.get("msg", "")})

    summary = "; ".join(
        f"{e['field']}: {e['message']}" if e["field"] else e["message"] for e in errors
    )
    logger.warning(
        f"Request validation failed: {summary}",
        extra={"path": request.url.path, "method": request.method},
    )
    return create_error_response(
        "ValidationError",
        "VALIDATION_ERROR",
        f"Validation failed: {summary}",
        status_code=400,
        correlation_id=_correlation_id(request),
        details={"errors": errors},
        path=request.url.path,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unexpected error: {str(exc)}",
        extra={
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc,
    )
    return create_error_response(
        "InternalServerError",
        "INTERNAL_ERROR",
        "An unexpected error occurred",
        status_code=500,
        correlation_id=_correlation_id(request),
        path=request.url.path,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error envelope handlers on an application"""
    app.add_exception_handler(JukeBoxdException, handle_application_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
