"""Logging configuration for the profiling service.

Purpose:
    Provide a single place that configures the root logger for the API server
    and CLI with one of three formats:

    - ``detailed``: timestamp, logger name, level, correlation id and message
    - ``simple``: level and message
    - ``json``: one JSON object per line, for log shippers

External Dependencies:
    Uses only the Python standard library `logging` module.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

correlation_id_context: ContextVar[str] = ContextVar("correlation_id", default="")
"""Context variable that stores the correlation identifier for the request."""

_HANDLER_MARKER = "_clusterprof_handler"

_DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"
_SIMPLE_FORMAT = "%(levelname)s: %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Attach the active correlation id to every record as ``correlation_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = correlation_id_context.get() or "-"
        return True


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        error_code = getattr(record, "error_code", None)
        if error_code:
            payload["error_code"] = error_code
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(format: str) -> logging.Formatter:
    if format == "json":
        return JsonFormatter()
    if format == "simple":
        return logging.Formatter(_SIMPLE_FORMAT)
    return logging.Formatter(_DETAILED_FORMAT)


def configure_logging(
    level: str | int = "INFO",
    format: str = "detailed",
    output: str = "console",
    log_file: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
) -> None:
    """Configure the root logger.

    Parameters:
        level: Level name or number.
        format: ``detailed``, ``simple`` or ``json``.
        output: ``console`` (stderr) or ``file``.
        log_file: Path used when ``output`` is ``file``; defaults to ``clusterprof.log``.
        handler: Pre-built handler to install instead (the CLI passes a Rich handler).
    Side Effects:
        Replaces handlers previously installed by this function; handlers added
        by other libraries are left untouched.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, _HANDLER_MARKER, False):
            root.removeHandler(existing)

    if handler is None:
        if output == "file":
            handler = logging.FileHandler(log_file or "clusterprof.log", encoding="utf-8")
        else:
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_build_formatter(format))

    handler.addFilter(CorrelationIdFilter())
    setattr(handler, _HANDLER_MARKER, True)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    # aiohttp access logs are noisy at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)


__all__ = [
    "CorrelationIdFilter",
    "JsonFormatter",
    "configure_logging",
    "correlation_id_context",
    "get_logger",
]
