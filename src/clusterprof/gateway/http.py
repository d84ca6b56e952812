"""
HTTP administrative gateway.

This module talks to the cluster administrative API over HTTP with aiohttp.
Profiling is started with ``POST /minio/admin/v3/profiling/start`` and the
archive is fetched with ``GET /minio/admin/v3/profiling/download``, which
also ends the session.

Usage:
    from clusterprof.gateway.http import HTTPAdminGateway

    gateway = HTTPAdminGateway("https://cluster.local:9000", access_token="...")
    results = await gateway.start_profiling(ProfilingKind.CPU)
    stream = await gateway.stop_profiling()
"""

import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

from clusterprof.core.exceptions import AdminAPIError, UpstreamUnavailableError
from clusterprof.core.models import ProfilingKind
from clusterprof.core.streams import ArchiveStream
from clusterprof.gateway.base import AdminGateway, RawNodeResult

logger = logging.getLogger(__name__)

START_PATH = "/minio/admin/v3/profiling/start"
DOWNLOAD_PATH = "/minio/admin/v3/profiling/download"

_AUTH_FAILURE_STATUSES = {401, 403}


class AiohttpArchiveStream(ArchiveStream):
    """Archive stream reading the body of an open aiohttp response."""

    def __init__(self, response: aiohttp.ClientResponse):
        super().__init__()
        self._response = response

    async def _read(self, size: int) -> bytes:
        if size is None or size < 0:
            return await self._response.content.read()
        return await self._response.content.read(size)

    async def _release(self) -> None:
        # close() drops the connection instead of draining an unread body
        self._response.close()


class HTTPAdminGateway(AdminGateway):
    """
    Gateway for the cluster administrative HTTP API.

    The aiohttp session is created lazily on first use so the gateway can be
    constructed outside a running event loop.
    """

    name = "http"

    def __init__(
        self,
        endpoint: str,
        *,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ):
        if not endpoint:
            raise ValueError("endpoint is required")
        self._endpoint = endpoint.rstrip("/")
        self._access_token = access_token
        self._timeout = float(timeout)
        self._verify_ssl = verify_ssl
        self._session = None

        logger.info(f"Initialized HTTP admin gateway for {self._endpoint}")

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _get_session(self):
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self._access_token:
                headers["Authorization"] = f"Bearer {self._access_token}"
            # Only connect/read inactivity is bounded; archive downloads may run long
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=self._timeout, sock_read=self._timeout),
            )
        return self._session

    @property
    def _ssl(self):
        return None if self._verify_ssl else False

    async def start_profiling(self, kind: ProfilingKind) -> list[RawNodeResult]:
        url = f"{self._endpoint}{START_PATH}"
        session = self._get_session()
        logger.debug("Starting %s profiling via %s", kind.value, url)

        try:
            async with session.post(
                url,
                params={"profilerType": kind.value},
                ssl=self._ssl,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                await _raise_for_status(response, "start")
                payload = await response.json(content_type=None)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailableError(f"Cannot reach admin API at {self._endpoint}: {e}", cause=e) from e
        except (aiohttp.ClientError, ValueError) as e:
            raise AdminAPIError(f"Invalid response from admin API: {e}") from e

        return _parse_results(payload)

    async def stop_profiling(self) -> ArchiveStream:
        url = f"{self._endpoint}{DOWNLOAD_PATH}"
        session = self._get_session()
        logger.debug("Stopping profiling and downloading archive via %s", url)

        try:
            response = await session.get(url, ssl=self._ssl)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailableError(f"Cannot reach admin API at {self._endpoint}: {e}", cause=e) from e

        try:
            await _raise_for_status(response, "stop")
        except BaseException:
            response.close()
            raise
        return AiohttpArchiveStream(response)

    async def aclose(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("Closed HTTP admin gateway session")
        self._session = None


async def _raise_for_status(response, operation: str) -> None:
    if response.status < 400:
        return
    message = await _error_message(response)
    if response.status in _AUTH_FAILURE_STATUSES:
        raise UpstreamUnavailableError(f"Admin API rejected credentials ({response.status}): {message}")
    logger.warning("Admin API %s failed with status %s: %s", operation, response.status, message)
    raise AdminAPIError(message, status=response.status)


async def _error_message(response) -> str:
    try:
        text = await response.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        text = ""

    try:
        body = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        body = None

    if isinstance(body, dict):
        for key in ("Message", "message", "detailedMessage", "error"):
            if body.get(key):
                return str(body[key])
    return text.strip() or f"HTTP {response.status}"


def _parse_results(payload: Any) -> list[RawNodeResult]:
    if not isinstance(payload, list):
        raise AdminAPIError("Admin API returned an unexpected profiling start payload")

    results = []
    for item in payload:
        if not isinstance(item, dict) or "nodeName" not in item:
            raise AdminAPIError(f"Admin API returned a malformed node result: {item!r}")
        results.append(
            RawNodeResult(
                node_name=str(item["nodeName"]),
                success=bool(item.get("success", False)),
                error=str(item.get("error") or ""),
            )
        )
    return results


__all__ = ["AiohttpArchiveStream", "HTTPAdminGateway"]
