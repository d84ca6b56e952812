"""
API Routes package.

Import routers explicitly from their modules, or call ``register_routes(app)``
to include every router under the configured API prefix.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from clusterprof.api.routes import profiling

logger = logging.getLogger(__name__)

__all__ = ["register_routes"]


def register_routes(app: FastAPI, api_prefix: str = "/api") -> None:
    """Include the service routers on ``app`` under ``api_prefix``."""
    app.include_router(profiling.router, prefix=api_prefix)
    logger.debug("Included profiling router under %s", api_prefix or "/")
