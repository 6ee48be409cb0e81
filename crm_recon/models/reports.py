from __future__ import annotations

import statistics
from dataclasses import dataclass, field

"""Run reports for the client import and invoice reconciliation executors.

Partial success is the normal outcome of a run, so every report keeps the
skip/failure breakdown next to the success counter.
"""

__all__ = [
    "RowFailure",
    "ConflictRecord",
    "ClientImportReport",
    "InvoiceImportReport",
    "CreateTimingAccumulator",
]


@dataclass(frozen=True)
class RowFailure:
    """A row whose entity creation (or invoice parsing) failed."""
    row_number: int  # 1-based data row
    label: str  # display name / invoice number, for the operator
    reason: str  # human readable error from the entity store


@dataclass(frozen=True)
class ConflictRecord:
    row_number: int
    invoice_number: str
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class ClientImportReport:
    success_count: int
    total: int  # accepted rows handed to the executor
    skipped_unresolved: int = 0  # owner / display name not resolvable at run time
    skipped_excluded: int = 0  # rows handed over without the included flag
    failures: tuple[RowFailure, ...] = ()
    cancelled: bool = False
    processed: int = 0
    elapsed_seconds: float = 0.0
    avg_create_seconds: float = 0.0
    p95_create_seconds: float = 0.0

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def all_succeeded(self) -> bool:
        return self.success_count == self.total and not self.cancelled


@dataclass(frozen=True)
class InvoiceImportReport:
    created: int
    total: int
    skipped_identical: int = 0
    skipped_conflict: int = 0
    skipped_invalid: int = 0
    skipped_unresolved: int = 0  # owner not in the owner directory
    failures: tuple[RowFailure, ...] = ()
    conflicts: tuple[ConflictRecord, ...] = ()
    cancelled: bool = False
    processed: int = 0
    elapsed_seconds: float = 0.0
    avg_create_seconds: float = 0.0
    p95_create_seconds: float = 0.0

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def all_succeeded(self) -> bool:
        return self.created == self.total and not self.cancelled


@dataclass
class CreateTimingAccumulator:
    """Collects create_entity call durations for the report."""
    durations: list[float] = field(default_factory=list)

    def add(self, elapsed_seconds: float) -> None:
        self.durations.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (calls, avg_seconds, p95_seconds)."""
        if not self.durations:
            return (0, 0.0, 0.0)
        calls = len(self.durations)
        avg = statistics.mean(self.durations)
        if calls == 1:
            p95 = self.durations[0]
        else:
            # 19th of 20 cut points is the 95th percentile
            p95 = statistics.quantiles(self.durations, n=20, method="inclusive")[18]
        return (calls, avg, p95)
