"""Domain models for cluster profiling sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Iterable

from clusterprof.core.exceptions import InvalidKindError


@unique
class ProfilingKind(str, Enum):
    """
    Profiling mechanisms a cluster node can run.

    Attributes:
        CPU: CPU sampling profile
        MEMORY: Heap allocation profile
        BLOCK: Blocking (contention) profile
        MUTEX: Mutex contention profile
        TRACE: Execution trace
        THREADS: OS thread creation dump
        GOROUTINES: Lightweight task dump
    """
    CPU = "cpu"
    MEMORY = "mem"
    BLOCK = "block"
    MUTEX = "mutex"
    TRACE = "trace"
    THREADS = "threads"
    GOROUTINES = "goroutines"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def names(cls) -> list[str]:
        """Return the accepted wire values in declaration order."""
        return [kind.value for kind in cls]

    @classmethod
    def parse(cls, value: Any) -> ProfilingKind:
        """Convert a string (or alias) to a ProfilingKind.

        Raises:
            InvalidKindError: If the value is not one of the supported kinds.
        """
        if isinstance(value, ProfilingKind):
            return value
        if not isinstance(value, str):
            raise InvalidKindError(value, cls.names())

        normalized = value.strip().lower().replace("_", "-")
        kind = _KIND_ALIASES.get(normalized)
        if kind is None:
            raise InvalidKindError(value, cls.names())
        return kind


_KIND_ALIASES: dict[str, ProfilingKind] = {kind.value: kind for kind in ProfilingKind}
_KIND_ALIASES.update({
    "memory": ProfilingKind.MEMORY,
    "execution-trace": ProfilingKind.TRACE,
    "thread": ProfilingKind.THREADS,
    "goroutine": ProfilingKind.GOROUTINES,
})


@dataclass(frozen=True)
class NodeProfilingOutcome:
    """One cluster node's response to a profiling start command."""

    node_name: str
    success: bool
    error: str = ""


@dataclass(frozen=True)
class ProfilingResultSet:
    """Ordered node outcomes of a single start command.

    Outcomes keep the gateway's order; duplicate node names are preserved.
    """

    outcomes: tuple[NodeProfilingOutcome, ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[NodeProfilingOutcome]) -> ProfilingResultSet:
        return cls(outcomes=tuple(outcomes))

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> list[NodeProfilingOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def failed(self) -> list[NodeProfilingOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self):
        return iter(self.outcomes)


__all__ = ["NodeProfilingOutcome", "ProfilingKind", "ProfilingResultSet"]
