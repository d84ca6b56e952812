"""
Translation of internal failures into API error payloads.

Every error response carries the same body::

    {"code": 502, "message": "Profiling start failed", "detailedMessage": "..."}

``code`` mirrors the HTTP status. ``detailedMessage`` is omitted for
unexpected exceptions so internals are not leaked.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from clusterprof.api.contracts.profiling import ErrorPayload
from clusterprof.core.exceptions import (
    ProfilingCanceledError,
    ProfilingError,
    UpstreamFailureError,
)

logger = logging.getLogger(__name__)

_SUMMARIES = {
    "MISSING_REQUEST_BODY": "Request body is required",
    "INVALID_KIND": "Invalid profiling type",
    "INVALID_REQUEST": "Invalid request body",
    "UPSTREAM_UNAVAILABLE": "Admin API is unavailable",
    "UPSTREAM_FAILURE": "Admin API request failed",
    "ADMIN_API_ERROR": "Admin API request failed",
    "DEADLINE_EXCEEDED": "Admin API request timed out",
    "CANCELED": "Request canceled",
    "CONFIGURATION_ERROR": "Service is misconfigured",
}


def error_payload(code: int, message: str, detailed_message: Optional[str] = None) -> dict:
    return ErrorPayload(code=code, message=message, detailed_message=detailed_message).model_dump(
        by_alias=True, exclude_none=True
    )


def _describe_validation_errors(errors: list) -> str:
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def translate_validation_error(exc: RequestValidationError) -> JSONResponse:
    """Build the JSON error response for a request body that failed validation."""
    errors = exc.errors()
    if any(tuple(error.get("loc", ()))[-1:] == ("type",) for error in errors):
        summary = _SUMMARIES["INVALID_KIND"]
    else:
        summary = _SUMMARIES["INVALID_REQUEST"]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload(status.HTTP_400_BAD_REQUEST, summary, _describe_validation_errors(errors)),
    )


def translate_error(exc: ProfilingError) -> JSONResponse:
    """Build the JSON error response for a profiling service exception."""
    summary = _SUMMARIES.get(exc.error_code, "An internal error occurred")
    detail = exc.message
    if isinstance(exc, UpstreamFailureError) and exc.cause is not None:
        detail = str(exc.cause) or exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc.status_code, summary, detail),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the profiling error translator on ``app``."""

    @app.exception_handler(ProfilingCanceledError)
    async def canceled_exception_handler(request: Request, exc: ProfilingCanceledError) -> JSONResponse:
        logger.info(f"Client canceled {request.method} {request.url.path}")
        return translate_error(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(f"{request.method} {request.url.path} rejected: invalid request body")
        return translate_validation_error(exc)

    @app.exception_handler(ProfilingError)
    async def profiling_exception_handler(request: Request, exc: ProfilingError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return translate_error(exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled exception: {str(exc)}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_payload(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "An unexpected error occurred. Please try again later.",
            ),
        )


__all__ = ["error_payload", "register_exception_handlers", "translate_error", "translate_validation_error"]
