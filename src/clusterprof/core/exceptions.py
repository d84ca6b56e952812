"""
Core exceptions for the cluster profiling service.

The exceptions are organized into categories:
- Request Validation Exceptions
- Upstream (administrative gateway) Exceptions
- Cancellation Exceptions
- Delivery Exceptions
- Configuration Exceptions

Each exception carries a stable ``error_code`` for programmatic handling and
the HTTP ``status_code`` the API layer reports it with.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ProfilingError(Exception):
    """Base exception class for all profiling service errors."""

    status_code: int = 500
    default_error_code: str = "PROFILING_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """
        Initialize a profiling service error.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional context information for debugging
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.context = context or {}

        logger.debug(f"{type(self).__name__}: {message}", extra={
            "error_code": self.error_code,
            "context": self.context,
        })


# Request Validation Exceptions

class MissingRequestBodyError(ProfilingError):
    """Raised when a profiling start is requested without a kind."""

    status_code = 400
    default_error_code = "MISSING_REQUEST_BODY"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Error: request body is required and must name a profiling type")


class InvalidKindError(ProfilingError):
    """Raised when a profiling kind is outside the supported set."""

    status_code = 400
    default_error_code = "INVALID_KIND"

    def __init__(self, kind: Any, allowed: Optional[list[str]] = None):
        """
        Initialize an invalid kind error.

        Args:
            kind: The rejected value
            allowed: Optional list of accepted kind names
        """
        self.kind = kind
        self.allowed = list(allowed or [])
        message = f"Unsupported profiling type '{kind}'"
        if self.allowed:
            message += f" (expected one of: {', '.join(self.allowed)})"
        super().__init__(message, context={"kind": str(kind), "allowed": self.allowed})


# Upstream Exceptions

class AdminAPIError(ProfilingError):
    """Raised by gateways when the administrative API rejects a command."""

    status_code = 502
    default_error_code = "ADMIN_API_ERROR"

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message, context={"status": status})


class UpstreamUnavailableError(ProfilingError):
    """Raised when the administrative capability cannot be reached or authenticated."""

    status_code = 503
    default_error_code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message, context={"cause": str(cause) if cause else None})


class UpstreamFailureError(ProfilingError):
    """Raised when an administrative gateway call itself fails."""

    status_code = 502
    default_error_code = "UPSTREAM_FAILURE"

    def __init__(self, operation: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        """
        Initialize an upstream failure.

        Args:
            operation: The gateway operation that failed (``start`` or ``stop``)
            cause: The underlying exception reported by the gateway
            message: Optional custom message
        """
        self.operation = operation
        self.cause = cause
        default_message = f"Profiling {operation} failed"
        if cause is not None:
            default_message += f": {cause}"
        super().__init__(
            message or default_message,
            context={"operation": operation, "cause": str(cause) if cause else None},
        )


# Cancellation Exceptions

class DeadlineExceededError(ProfilingError):
    """Raised when a gateway call does not complete before its deadline."""

    status_code = 504
    default_error_code = "DEADLINE_EXCEEDED"

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            f"Profiling {operation} did not complete within {timeout:g}s",
            context={"operation": operation, "timeout": timeout},
        )


class ProfilingCanceledError(ProfilingError):
    """Raised when the requesting client goes away before a gateway call completes."""

    # nginx convention for "client closed request"
    status_code = 499
    default_error_code = "CANCELED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Profiling {operation} canceled by the client", context={"operation": operation})


# Delivery Exceptions

class TransportWriteFailureError(ProfilingError):
    """Recorded when archive bytes cannot be written after headers were committed."""

    default_error_code = "TRANSPORT_WRITE_FAILURE"

    def __init__(self, bytes_sent: int, cause: Optional[BaseException] = None):
        self.bytes_sent = bytes_sent
        self.cause = cause
        message = f"Archive transfer aborted after {bytes_sent} bytes"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message, context={"bytes_sent": bytes_sent})


# Configuration Exceptions

class ConfigurationError(ProfilingError):
    """Raised when service configuration cannot be loaded or is invalid."""

    default_error_code = "CONFIGURATION_ERROR"


__all__ = [
    "AdminAPIError",
    "ConfigurationError",
    "DeadlineExceededError",
    "InvalidKindError",
    "MissingRequestBodyError",
    "ProfilingCanceledError",
    "ProfilingError",
    "TransportWriteFailureError",
    "UpstreamFailureError",
    "UpstreamUnavailableError",
]
