"""Profiling API contract models."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from clusterprof.core.models import NodeProfilingOutcome, ProfilingResultSet


class StartProfilingRequest(BaseModel):
    """Body payload accepted by the profiling start endpoint.

    ``type`` is validated by the orchestrator so a missing or unknown kind is
    reported with the same error payload as every other profiling failure.
    """

    type: Optional[str] = Field(
        default=None,
        description="Profiling mechanism: cpu, mem, block, mutex, trace, threads or goroutines.",
    )

    model_config = ConfigDict(extra="forbid")


class StartProfilingItem(BaseModel):
    """Outcome of the start command on one node."""

    node_name: str = Field(..., alias="nodeName")
    success: bool
    error: str = ""

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_outcome(cls, outcome: NodeProfilingOutcome) -> StartProfilingItem:
        return cls(node_name=outcome.node_name, success=outcome.success, error=outcome.error)


class StartProfilingList(BaseModel):
    """Response contract of the profiling start endpoint."""

    start_results: List[StartProfilingItem] = Field(default_factory=list, alias="startResults")
    total: int = Field(0, ge=0)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result_set(cls, result_set: ProfilingResultSet) -> StartProfilingList:
        return cls(
            start_results=[StartProfilingItem.from_outcome(outcome) for outcome in result_set.outcomes],
            total=result_set.total,
        )


class ProfilingKindsResponse(BaseModel):
    kinds: List[str]


class ErrorPayload(BaseModel):
    """Error body returned by every failing endpoint."""

    code: int
    message: str
    detailed_message: Optional[str] = Field(default=None, alias="detailedMessage")

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "ErrorPayload",
    "ProfilingKindsResponse",
    "StartProfilingItem",
    "StartProfilingList",
    "StartProfilingRequest",
]
