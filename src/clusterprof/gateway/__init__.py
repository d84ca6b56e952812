"""
Administrative gateways.

``create_gateway`` selects the implementation named by ``Settings.gateway``:

- ``http``: :class:`~clusterprof.gateway.http.HTTPAdminGateway`
- ``memory``: :class:`~clusterprof.gateway.in_memory.InMemoryAdminGateway`
"""

from __future__ import annotations

import logging

from clusterprof.config import Settings
from clusterprof.core.exceptions import ConfigurationError
from clusterprof.gateway.base import AdminGateway, RawNodeResult
from clusterprof.gateway.http import HTTPAdminGateway
from clusterprof.gateway.in_memory import InMemoryAdminGateway

logger = logging.getLogger(__name__)


def create_gateway(settings: Settings) -> AdminGateway:
    """Build the admin gateway configured by ``settings``."""
    if settings.gateway == "memory":
        if not settings.memory_nodes:
            raise ConfigurationError("memory gateway requires at least one node in memory_nodes")
        logger.info("Using in-memory admin gateway with %d nodes", len(settings.memory_nodes))
        return InMemoryAdminGateway(settings.memory_nodes)

    if not settings.admin_endpoint:
        raise ConfigurationError("admin_endpoint must be set when gateway is 'http'")
    return HTTPAdminGateway(
        settings.admin_endpoint,
        access_token=settings.admin_access_token,
        timeout=settings.admin_timeout,
        verify_ssl=settings.admin_verify_ssl,
    )


__all__ = [
    "AdminGateway",
    "HTTPAdminGateway",
    "InMemoryAdminGateway",
    "RawNodeResult",
    "create_gateway",
]
