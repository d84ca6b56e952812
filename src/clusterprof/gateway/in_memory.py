"""
In-process administrative gateway.

Simulates the cluster-side profiling state machine (``idle -> profiling ->
idle``) so the API and CLI can run without a live cluster. Nodes listed in
``failing_nodes`` report a failure when a session starts and contribute no
profile to the archive.
"""

from __future__ import annotations

import asyncio
import io
import logging
import zipfile
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

from clusterprof.core.exceptions import AdminAPIError
from clusterprof.core.models import ProfilingKind
from clusterprof.core.streams import ArchiveStream, BytesArchiveStream
from clusterprof.gateway.base import AdminGateway, RawNodeResult

logger = logging.getLogger(__name__)


class InMemoryAdminGateway(AdminGateway):
    """Gateway that keeps the cluster profiling state in process memory."""

    name = "memory"

    def __init__(self, nodes: Sequence[str], *, failing_nodes: Optional[Mapping[str, str]] = None):
        if not nodes:
            raise ValueError("at least one node is required")
        self.nodes = list(nodes)
        self.failing_nodes = dict(failing_nodes or {})
        self._lock = asyncio.Lock()
        self._active_kind: Optional[ProfilingKind] = None
        self._active_nodes: list[str] = []
        self._started_at: Optional[datetime] = None

    @property
    def profiling(self) -> bool:
        return self._active_kind is not None

    async def start_profiling(self, kind: ProfilingKind) -> list[RawNodeResult]:
        async with self._lock:
            if self._active_kind is not None:
                raise AdminAPIError(f"profiler already running: {self._active_kind.value}", status=409)

            results = []
            for node in self.nodes:
                error = self.failing_nodes.get(node)
                if error:
                    results.append(RawNodeResult(node_name=node, success=False, error=error))
                else:
                    results.append(RawNodeResult(node_name=node, success=True))

            self._active_kind = kind
            self._active_nodes = [result.node_name for result in results if result.success]
            self._started_at = datetime.now(timezone.utc)
            logger.info("Started %s profiling on %d/%d nodes", kind.value, len(self._active_nodes), len(self.nodes))
            return results

    async def stop_profiling(self) -> ArchiveStream:
        async with self._lock:
            if self._active_kind is None:
                raise AdminAPIError("no profiling session is active", status=400)

            kind, nodes, started_at = self._active_kind, self._active_nodes, self._started_at
            self._active_kind = None
            self._active_nodes = []
            self._started_at = None

        archive = _build_archive(kind, nodes, started_at)
        logger.info("Stopped %s profiling, archive is %d bytes", kind.value, len(archive))
        return BytesArchiveStream(archive, name="profile.zip")


def _build_archive(kind: ProfilingKind, nodes: Sequence[str], started_at: Optional[datetime]) -> bytes:
    stopped_at = datetime.now(timezone.utc)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for node in nodes:
            member = f"profile-{node.replace(':', '_')}-{kind.value}.pprof"
            body = (
                f"node={node}\nkind={kind.value}\n"
                f"started={started_at.isoformat() if started_at else ''}\n"
                f"stopped={stopped_at.isoformat()}\n"
            )
            archive.writestr(member, body)
    return buffer.getvalue()


__all__ = ["InMemoryAdminGateway"]
