"""
Base gateway interface for cluster administrative commands.

The profiling orchestrator depends only on the ``AdminGateway`` capability:
begin a profiling session on every node and end it, receiving the compressed
archive as an ``ArchiveStream``. Concrete gateways decide how cluster nodes
are reached.

Classes:
    RawNodeResult: Per-node outcome as reported by the administrative API
    AdminGateway: Abstract base class for all gateway implementations

Example:
    ```python
    class MyGateway(AdminGateway):
        async def start_profiling(self, kind):
            ...

        async def stop_profiling(self):
            ...
    ```
"""

import abc
import dataclasses
import logging

from clusterprof.core.models import ProfilingKind
from clusterprof.core.streams import ArchiveStream

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class RawNodeResult:
    """
    Profiling start result reported by a single node.

    Attributes:
        node_name (str): Address or name of the node
        success (bool): Whether the node started profiling
        error (str): Error text reported by the node, empty on success
    """
    node_name: str
    success: bool
    error: str = ""


class AdminGateway(abc.ABC):
    """
    Abstract capability for issuing profiling commands to a cluster.

    ``start_profiling`` is a single call that returns the complete set of node
    results; partial or streaming delivery of results is not supported.
    ``stop_profiling`` returns an open archive stream whose ownership is fully
    transferred to the caller.
    """

    name: str = "base"

    @abc.abstractmethod
    async def start_profiling(self, kind: ProfilingKind) -> list[RawNodeResult]:
        """
        Begin a profiling session of the given kind on every node.

        Args:
            kind: The profiling mechanism to enable

        Returns:
            One result per node, in the order the cluster reported them

        Raises:
            AdminAPIError: If the cluster rejects the command
            UpstreamUnavailableError: If the cluster cannot be reached
        """

    @abc.abstractmethod
    async def stop_profiling(self) -> ArchiveStream:
        """
        End the active profiling session and open the resulting archive.

        Returns:
            An open archive stream owned by the caller

        Raises:
            AdminAPIError: If no session is active or the cluster rejects the command
            UpstreamUnavailableError: If the cluster cannot be reached
        """

    async def aclose(self) -> None:
        """Release transport resources held by the gateway."""
        return None


__all__ = ["AdminGateway", "RawNodeResult"]
