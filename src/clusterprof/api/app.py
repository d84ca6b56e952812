"""
Cluster Profiling API Application

This module builds the FastAPI application: it wires the admin gateway into a
``ProfilingOrchestrator`` and ``ArchiveStreamDeliverer``, installs middleware
and the error translator, and registers the profiling routes.

Usage:
    To run the API server:
    ```
    uvicorn clusterprof.api.main:app --host 0.0.0.0 --port 8000
    ```

    To embed or test the application with a specific gateway:
    ```
    app = create_app(settings, gateway=InMemoryAdminGateway(["node1:9000"]))
    ```
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clusterprof import __version__
from clusterprof.api.errors import register_exception_handlers
from clusterprof.api.middleware.logging import setup_request_logging
from clusterprof.api.routes import register_routes
from clusterprof.config import Settings, load_settings
from clusterprof.core.services.archive_delivery import ArchiveStreamDeliverer
from clusterprof.core.services.profiling import ProfilingOrchestrator
from clusterprof.gateway import AdminGateway, create_gateway

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, gateway: Optional[AdminGateway] = None) -> FastAPI:
    """
    Create the profiling API application.

    Args:
        settings: Service settings; loaded from the environment when omitted
        gateway: Admin gateway to use; built from ``settings`` when omitted

    Returns:
        FastAPI: Configured application
    """
    settings = settings or load_settings()
    gateway = gateway or create_gateway(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"API server starting up (gateway: {gateway.name})")
        try:
            yield
        finally:
            logger.info("API server shutting down")
            try:
                await gateway.aclose()
            except Exception as e:
                logger.exception(f"Error closing admin gateway: {e}")

    app = FastAPI(
        title="Cluster Profiling API",
        description="Start, stop and download cluster-wide profiling sessions",
        version=__version__,
        docs_url=f"{settings.api_prefix}/docs" if not settings.is_production else None,
        redoc_url=f"{settings.api_prefix}/redoc" if not settings.is_production else None,
        openapi_url=f"{settings.api_prefix}/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.gateway = gateway
    app.state.orchestrator = ProfilingOrchestrator(
        gateway,
        start_timeout=settings.start_timeout,
        stop_timeout=settings.stop_timeout,
    )
    app.state.deliverer = ArchiveStreamDeliverer(
        chunk_size=settings.chunk_size,
        filename=settings.archive_filename,
    )

    setup_request_logging(app)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["Content-Disposition"],
        )

    register_exception_handlers(app)

    @app.get(f"{settings.api_prefix}/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the API is running."""
        return {"status": "ok", "version": app.version, "gateway": gateway.name}

    register_routes(app, settings.api_prefix)
    return app


__all__ = ["create_app"]
