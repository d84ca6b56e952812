"""
Profiling session orchestration.

``ProfilingOrchestrator`` sequences calls to an ``AdminGateway``:

- ``start_session`` validates the requested kind, starts profiling on every
  node and maps each node's outcome into a ``ProfilingResultSet``. Node
  failures are data; only a failed gateway call is an error.
- ``stop_session`` ends the session and hands the archive stream to the
  caller, who then owns it.

The cluster's profiling state lives on the remote side. The orchestrator keeps
none, so starting twice or stopping while idle is forwarded to the gateway and
its rejection surfaces as ``UpstreamFailureError``.

Deadlines cancel the in-flight gateway call and raise
``DeadlineExceededError``. Cancelling the calling task cancels the gateway
call and propagates ``asyncio.CancelledError``. Either way, an archive stream
the gateway managed to open is closed before the error leaves this module.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from clusterprof.core.exceptions import (
    DeadlineExceededError,
    MissingRequestBodyError,
    UpstreamFailureError,
    UpstreamUnavailableError,
)
from clusterprof.core.models import NodeProfilingOutcome, ProfilingKind, ProfilingResultSet
from clusterprof.core.streams import ArchiveStream
from clusterprof.gateway.base import AdminGateway

logger = logging.getLogger(__name__)

_Release = Callable[[Any], Awaitable[None]]


async def _close_stream(stream: Optional[ArchiveStream]) -> None:
    if stream is not None:
        await stream.aclose()


class ProfilingOrchestrator:
    """Starts and stops cluster profiling sessions through an admin gateway."""

    def __init__(
        self,
        gateway: AdminGateway,
        *,
        start_timeout: Optional[float] = None,
        stop_timeout: Optional[float] = None,
    ):
        self._gateway = gateway
        self.start_timeout = start_timeout
        self.stop_timeout = stop_timeout

    @property
    def gateway(self) -> AdminGateway:
        return self._gateway

    async def start_session(self, kind: Any, *, timeout: Optional[float] = None) -> ProfilingResultSet:
        """
        Start a profiling session of ``kind`` on every cluster node.

        Args:
            kind: A ``ProfilingKind`` or its string value
            timeout: Deadline in seconds; defaults to ``start_timeout``

        Returns:
            ProfilingResultSet: One outcome per node in gateway order

        Raises:
            MissingRequestBodyError: If no kind was supplied
            InvalidKindError: If the kind is not supported
            UpstreamUnavailableError: If the gateway cannot reach the cluster
            UpstreamFailureError: If the gateway call failed
            DeadlineExceededError: If the deadline elapsed first
        """
        if kind is None or (isinstance(kind, str) and not kind.strip()):
            raise MissingRequestBodyError()
        profiling_kind = ProfilingKind.parse(kind)

        deadline = timeout if timeout is not None else self.start_timeout
        logger.info("Starting %s profiling across the cluster", profiling_kind.value)

        raw_results = await self._call_gateway(
            "start",
            lambda: self._gateway.start_profiling(profiling_kind),
            deadline,
        )
        if raw_results is None:
            raise UpstreamFailureError("start", message="Profiling start failed: gateway returned no node results")

        result_set = ProfilingResultSet.from_outcomes(
            NodeProfilingOutcome(
                node_name=raw.node_name,
                success=raw.success,
                error=raw.error or "",
            )
            for raw in raw_results
        )

        failed = result_set.failed
        if failed:
            logger.warning(
                "%s profiling failed to start on %d/%d nodes: %s",
                profiling_kind.value,
                len(failed),
                result_set.total,
                ", ".join(outcome.node_name for outcome in failed),
            )
        else:
            logger.info("%s profiling started on %d nodes", profiling_kind.value, result_set.total)
        return result_set

    async def stop_session(self, *, timeout: Optional[float] = None) -> ArchiveStream:
        """
        Stop the active profiling session and open its archive.

        The returned stream is owned by the caller, who must close it.

        Raises:
            UpstreamUnavailableError: If the gateway cannot reach the cluster
            UpstreamFailureError: If the gateway call failed, e.g. no session is active
            DeadlineExceededError: If the deadline elapsed first
        """
        deadline = timeout if timeout is not None else self.stop_timeout
        logger.info("Stopping cluster profiling")

        stream = await self._call_gateway("stop", self._gateway.stop_profiling, deadline, release=_close_stream)
        if stream is None:
            raise UpstreamFailureError("stop", message="Profiling stop failed: gateway returned no archive")
        return stream

    async def _call_gateway(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        timeout: Optional[float],
        release: Optional[_Release] = None,
    ) -> Any:
        task = asyncio.ensure_future(call())
        try:
            if timeout is None:
                return await task
            return await asyncio.wait_for(task, timeout)
        except asyncio.CancelledError:
            logger.info("Profiling %s canceled before the gateway responded", operation)
            await self._discard(operation, task, release)
            raise
        except asyncio.TimeoutError as e:
            if _raised_by(task, e):
                logger.error("Profiling %s failed: %s", operation, e)
                raise UpstreamFailureError(operation, e) from e
            logger.warning("Profiling %s exceeded its %ss deadline", operation, timeout)
            await self._discard(operation, task, release)
            raise DeadlineExceededError(operation, timeout) from None
        except UpstreamUnavailableError:
            raise
        except Exception as e:
            logger.error("Profiling %s failed: %s", operation, e)
            raise UpstreamFailureError(operation, e) from e

    async def _discard(self, operation: str, task: asyncio.Future, release: Optional[_Release]) -> None:
        """Release a result the caller will never see."""
        if not task.done():
            task.cancel()
            # Let the gateway finish its own cleanup; it may still hand back a result
            await asyncio.shield(asyncio.gather(task, return_exceptions=True))
        if release is None or task.cancelled() or task.exception() is not None:
            return
        await asyncio.shield(self._release_orphan(operation, task.result(), release))

    async def _release_orphan(self, operation: str, result: Any, release: _Release) -> None:
        try:
            await release(result)
            logger.debug("Released resource from abandoned profiling %s", operation)
        except Exception:
            logger.exception("Failed to release resource from abandoned profiling %s", operation)


def _raised_by(task: asyncio.Future, error: BaseException) -> bool:
    return task.done() and not task.cancelled() and task.exception() is error


__all__ = ["ProfilingOrchestrator"]
