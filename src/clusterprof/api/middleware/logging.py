"""Request logging middleware and correlation helpers."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from clusterprof.monitoring.logging import correlation_id_context

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Request-ID"

# Default paths that will be excluded from request logging output.
DEFAULT_EXCLUDE_PATHS: set[str] = {
    "/health",
    "/api/health",
    "/docs",
    "/redoc",
    "/openapi.json",
}

# Default HTTP headers that should be redacted in log output.
SENSITIVE_HEADERS: set[str] = {
    "authorization",
    "x-api-key",
    "cookie",
    "set-cookie",
}


def get_correlation_id() -> str:
    """Return the correlation identifier of the active request, if any."""
    return correlation_id_context.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Store ``correlation_id`` (or a new UUID) for the active request context."""
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
    correlation_id_context.set(correlation_id)
    return correlation_id


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive HTTP headers before logging them."""
    return {
        key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging request information and timing."""

    def __init__(self, app, exclude_paths: Optional[set[str]] = None):
        super().__init__(app)
        self.exclude_paths = DEFAULT_EXCLUDE_PATHS if exclude_paths is None else exclude_paths

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        path = request.url.path
        quiet = path in self.exclude_paths

        if not quiet:
            logger.debug(
                f"Request started: {request.method} {path} (ID: {request_id}) "
                f"headers={sanitize_headers(dict(request.headers))}"
            )

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception(
                f"Request failed: {request.method} {path} "
                f"- Error: {str(e)} - Time: {process_time:.3f}s "
                f"(ID: {request_id})"
            )
            raise

        process_time = time.time() - start_time
        if not quiet:
            logger.info(
                f"Request completed: {request.method} {path} "
                f"- Status: {response.status_code} - Time: {process_time:.3f}s "
                f"(ID: {request_id})"
            )
        response.headers[CORRELATION_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        return response


def setup_request_logging(app: FastAPI, exclude_paths: Optional[set[str]] = None) -> None:
    """Install ``RequestLoggingMiddleware`` on ``app``."""
    app.add_middleware(RequestLoggingMiddleware, exclude_paths=exclude_paths)


__all__ = [
    "CORRELATION_HEADER",
    "DEFAULT_EXCLUDE_PATHS",
    "RequestLoggingMiddleware",
    "SENSITIVE_HEADERS",
    "correlation_id_context",
    "get_correlation_id",
    "sanitize_headers",
    "set_correlation_id",
    "setup_request_logging",
]
