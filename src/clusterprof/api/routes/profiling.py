"""
Profiling API Routes

Endpoints for capturing cluster-wide profiles:

- POST /profiling/start: start a profiling session of the requested type on
  every node and report each node's outcome
- POST /profiling/stop: stop the session and download the archive as
  ``profile.zip``
- GET /profiling/kinds: list the accepted profiling types

Gateway calls are cancelled when the requesting client disconnects.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Request, status

from clusterprof.api.contracts.profiling import (
    ErrorPayload,
    ProfilingKindsResponse,
    StartProfilingList,
    StartProfilingRequest,
)
from clusterprof.api.responses import ArchiveStreamResponse
from clusterprof.core.exceptions import ProfilingCanceledError
from clusterprof.core.models import ProfilingKind
from clusterprof.core.services.archive_delivery import ARCHIVE_MEDIA_TYPE, ArchiveStreamDeliverer
from clusterprof.core.services.profiling import ProfilingOrchestrator

logger = logging.getLogger(__name__)

DISCONNECT_POLL_INTERVAL = 0.25

router = APIRouter(
    prefix="/profiling",
    tags=["Profiling"],
    responses={
        400: {"model": ErrorPayload, "description": "Invalid request"},
        502: {"model": ErrorPayload, "description": "Admin API request failed"},
        503: {"model": ErrorPayload, "description": "Admin API unavailable"},
        504: {"model": ErrorPayload, "description": "Admin API request timed out"},
    },
)


def get_orchestrator(request: Request) -> ProfilingOrchestrator:
    return request.app.state.orchestrator


def get_deliverer(request: Request) -> ArchiveStreamDeliverer:
    return request.app.state.deliverer


async def _wait_for_disconnect(request: Request, poll_interval: float) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(poll_interval)


async def call_with_disconnect_guard(
    request: Request,
    operation: str,
    awaitable: Awaitable[Any],
    *,
    poll_interval: float = DISCONNECT_POLL_INTERVAL,
    release: Optional[Callable[[Any], Awaitable[None]]] = None,
) -> Any:
    """
    Await ``awaitable`` unless the client disconnects first.

    ``release`` is called with a result the call produced after the client
    went away, since nobody else will receive it.

    Raises:
        ProfilingCanceledError: If the client went away; the pending call is
            cancelled and allowed to clean up before this is raised.
    """
    task = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request, poll_interval))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()

    # A call that finished alongside a disconnect still hands its result to the caller
    if task.done() and not task.cancelled():
        return task.result()

    await asyncio.gather(task, return_exceptions=True)
    if release is not None and not task.cancelled() and task.exception() is None:
        logger.info("Releasing result of profiling %s finished after the client disconnected", operation)
        await asyncio.shield(release(task.result()))
    raise ProfilingCanceledError(operation)


@router.get(
    "/kinds",
    summary="List profiling types",
    response_model=ProfilingKindsResponse,
)
async def list_profiling_kinds() -> ProfilingKindsResponse:
    return ProfilingKindsResponse(kinds=ProfilingKind.names())


@router.post(
    "/start",
    summary="Start profiling",
    description="Start a profiling session on every cluster node",
    status_code=status.HTTP_201_CREATED,
    response_model=StartProfilingList,
)
async def start_profiling(
    request: Request,
    body: Optional[StartProfilingRequest] = None,
    orchestrator: ProfilingOrchestrator = Depends(get_orchestrator),
) -> StartProfilingList:
    """
    Start profiling across the cluster.

    Example:
      POST /api/profiling/start
      {"type": "cpu"}

    Per-node failures are reported in ``startResults`` and do not fail the
    request.
    """
    kind = body.type if body is not None else None
    result_set = await call_with_disconnect_guard(request, "start", orchestrator.start_session(kind))
    return StartProfilingList.from_result_set(result_set)


@router.post(
    "/stop",
    summary="Stop profiling and download the archive",
    response_class=ArchiveStreamResponse,
    responses={200: {"content": {ARCHIVE_MEDIA_TYPE: {}}, "description": "Zip archive of node profiles"}},
)
async def stop_profiling(
    request: Request,
    orchestrator: ProfilingOrchestrator = Depends(get_orchestrator),
    deliverer: ArchiveStreamDeliverer = Depends(get_deliverer),
) -> ArchiveStreamResponse:
    stream = await call_with_disconnect_guard(
        request, "stop", orchestrator.stop_session(), release=deliverer.close_stream
    )
    return ArchiveStreamResponse(stream, deliverer)


__all__ = ["call_with_disconnect_guard", "get_deliverer", "get_orchestrator", "router"]
