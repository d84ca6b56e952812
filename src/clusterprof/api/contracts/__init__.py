"""API contract models."""

from clusterprof.api.contracts.profiling import (
    ErrorPayload,
    ProfilingKindsResponse,
    StartProfilingItem,
    StartProfilingList,
    StartProfilingRequest,
)

__all__ = [
    "ErrorPayload",
    "ProfilingKindsResponse",
    "StartProfilingItem",
    "StartProfilingList",
    "StartProfilingRequest",
]
