"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

This module defines the request, outcome and batch result types exchanged
between the coordinator and its collaborators.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, TypeAlias

from .errors import ErrorKind

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
Payload: TypeAlias = str | bytes | JSONValue

ResponseParser: TypeAlias = Callable[[Any], Any]


class RemoteCaller(Protocol):
    """Outbound call to the remote analysis provider."""

    def __call__(self, payload: Payload, classification: str) -> Awaitable[Any]: ...


@dataclass(frozen=True, slots=True)
class AnalysisRequest:
    """One unit of analysis work handed to the coordinator."""

    id: str
    payload: Payload
    classification: str
    metadata: dict[str, JSONValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Success:
    """Successful outcome wrapping the provider's (parsed) value."""

    value: Any
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class Failure:
    """Failed outcome with a kind and a human-readable reason."""

    kind: ErrorKind
    message: str
    retryable: bool = False
    ok: Literal[False] = False


Outcome: TypeAlias = Success | Failure


@dataclass(frozen=True, slots=True)
class BatchItemResult:
    """
    Terminal output for one request.

    Attributes:
        request_id: Id of the originating request.
        outcome: ``Success`` or ``Failure``.
        cached: Served from the response cache without a remote call.
        coalesced: Shared the outcome of an identical in-flight request.
        attempts: Remote attempts made for this item (0 for cache hits).
        duration_ms: Wall-clock time spent on this item.
        metadata: Caller metadata copied from the request.
    """

    request_id: str
    outcome: Outcome
    cached: bool = False
    coalesced: bool = False
    attempts: int = 0
    duration_ms: float = 0.0
    metadata: dict[str, JSONValue] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome.ok


@dataclass(frozen=True, slots=True)
class BatchSummary:
    """Aggregate counters derived from a list of item results."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cache_hits: int = 0
    coalesced: int = 0
    total_duration_ms: float = 0.0
    cancelled: bool = False
    failures_by_kind: dict[str, int] = field(default_factory=dict)

    @property
    def cache_hit_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.cache_hits / self.total

    @classmethod
    def from_results(
        cls,
        results: Iterable[BatchItemResult],
        *,
        cancelled: bool = False,
    ) -> "BatchSummary":
        rows = list(results)
        failures = [row.outcome for row in rows if isinstance(row.outcome, Failure)]
        return cls(
            total=len(rows),
            succeeded=len(rows) - len(failures),
            failed=len(failures),
            cache_hits=sum(1 for row in rows if row.cached),
            coalesced=sum(1 for row in rows if row.coalesced),
            total_duration_ms=sum(row.duration_ms for row in rows),
            cancelled=cancelled,
            failures_by_kind=dict(Counter(failure.kind for failure in failures)),
        )


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Summary plus per-item results for one batch run."""

    summary: BatchSummary
    results: tuple[BatchItemResult, ...] = ()
    skipped: tuple[str, ...] = ()
    elapsed_ms: float = 0.0

    def sorted_results(self) -> list[BatchItemResult]:
        """Return results ordered by request id."""
        return sorted(self.results, key=lambda row: row.request_id)

    def failures(self) -> list[BatchItemResult]:
        return [row for row in self.results if not row.ok]
