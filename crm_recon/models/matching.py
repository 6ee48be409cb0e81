from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .records import ExistingInvoiceRef

"""Matcher outcome and the per-run batch accumulator.

BatchDedupeSet is an immutable value: the matcher returns a new set instead of
mutating a shared one, so a run is a plain fold over the ordered rows.
"""

__all__ = [
    "MatchKind",
    "MatchOutcome",
    "BatchDedupeSet",
    "DuplicateInvoiceGroup",
]

REPEATED_IN_BATCH = "repeated within this batch"


class MatchKind(Enum):
    NONE = "none"
    IDENTICAL = "identical"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class MatchOutcome:
    """Tagged result of matching one candidate invoice.

    NONE carries no reference. IDENTICAL carries the agreeing record. CONFLICT
    carries the first disagreeing record (None for a pure in-batch repeat) and
    the human readable reasons.
    """
    kind: MatchKind
    reference: ExistingInvoiceRef | None = None
    reasons: tuple[str, ...] = ()

    @classmethod
    def none(cls) -> MatchOutcome:
        return cls(MatchKind.NONE)

    @classmethod
    def identical(cls, reference: ExistingInvoiceRef) -> MatchOutcome:
        return cls(MatchKind.IDENTICAL, reference=reference)

    @classmethod
    def conflict(
        cls, reference: ExistingInvoiceRef | None, reasons: tuple[str, ...] | list[str]
    ) -> MatchOutcome:
        return cls(MatchKind.CONFLICT, reference=reference, reasons=tuple(reasons))

    @property
    def is_none(self) -> bool:
        return self.kind is MatchKind.NONE

    @property
    def is_identical(self) -> bool:
        return self.kind is MatchKind.IDENTICAL

    @property
    def is_conflict(self) -> bool:
        return self.kind is MatchKind.CONFLICT

    @property
    def message(self) -> str:
        if self.kind is MatchKind.NONE:
            return "no match"
        if self.kind is MatchKind.IDENTICAL:
            label = self.reference.label if self.reference is not None else ""
            return f"identical to existing invoice {label}".rstrip()
        return "; ".join(self.reasons)


@dataclass(frozen=True)
class BatchDedupeSet:
    """Normalized numbers accepted earlier in the same run."""
    identifiers: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def empty(cls) -> BatchDedupeSet:
        return cls()

    def with_identifier(self, identifier: str) -> BatchDedupeSet:
        return BatchDedupeSet(self.identifiers | {identifier})

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.identifiers

    def __len__(self) -> int:
        return len(self.identifiers)


@dataclass(frozen=True)
class DuplicateInvoiceGroup:
    """Persisted invoices sharing one normalized number."""
    normalized_number: str
    invoices: tuple[ExistingInvoiceRef, ...]

    @property
    def has_credit_note(self) -> bool:
        return any(inv.credit_note for inv in self.invoices)
