from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from ..models.matching import (
    REPEATED_IN_BATCH,
    BatchDedupeSet,
    DuplicateInvoiceGroup,
    MatchOutcome,
)
from ..models.records import ExistingInvoiceRef, InvoiceCandidate
from .index import ExistingEntityIndex
from .normalizer import is_long, is_short, is_valid

"""Duplicate/conflict matcher for uploaded invoices.

Priority, for one candidate:
1. any number match whose owner, date and amount all agree -> IDENTICAL
   (wins regardless of scan order)
2. otherwise, any number match that disagrees -> CONFLICT on the first one
3. otherwise the number repeats an earlier accepted row of this run -> CONFLICT
4. otherwise NONE, and only then the number joins the batch accumulator
"""

__all__ = [
    "AMOUNT_TOLERANCE",
    "numbers_match",
    "field_disagreements",
    "classify",
    "match",
    "reconcile",
    "find_duplicate_groups",
]

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.1")


def _suffix_match(short: str, long: str) -> bool:
    return is_short(short) and is_long(long) and long.endswith(short)


def numbers_match(a: str, b: str) -> bool:
    """Exact equality, or a short number that is the tail of a long one."""
    if not is_valid(a) or not is_valid(b):
        return False
    if a == b:
        return True
    return _suffix_match(a, b) or _suffix_match(b, a)


def field_disagreements(candidate: InvoiceCandidate, ref: ExistingInvoiceRef) -> list[str]:
    """Reasons the two invoices differ beyond the number; empty means they agree."""
    reasons: list[str] = []
    if candidate.owner_entity_id != ref.owner_entity_id:
        reasons.append(f"owner differs ({candidate.owner_entity_id} vs {ref.owner_entity_id})")
    if candidate.issue_date != ref.issue_date:
        reasons.append(f"date differs ({candidate.issue_date} vs {ref.issue_date})")
    if abs(candidate.amount - ref.amount) >= AMOUNT_TOLERANCE:
        reasons.append(f"amount differs ({candidate.amount} vs {ref.amount})")
    return reasons


def classify(candidate: InvoiceCandidate, index: ExistingEntityIndex) -> MatchOutcome:
    """Match a candidate against the persisted invoices only."""
    first_conflict: tuple[ExistingInvoiceRef, list[str]] | None = None
    for ref in index.invoices:
        if not numbers_match(candidate.normalized_number, ref.normalized_number):
            continue
        reasons = field_disagreements(candidate, ref)
        if not reasons:
            return MatchOutcome.identical(ref)
        if first_conflict is None:
            first_conflict = (ref, reasons)

    if first_conflict is not None:
        ref, reasons = first_conflict
        explanation = f"number collides with existing invoice {ref.label}: " + ", ".join(reasons)
        return MatchOutcome.conflict(ref, (explanation,))
    return MatchOutcome.none()


def match(
    candidate: InvoiceCandidate,
    index: ExistingEntityIndex,
    batch: BatchDedupeSet,
) -> tuple[MatchOutcome, BatchDedupeSet]:
    """Classify one candidate and thread the batch accumulator.

    Returns the outcome and the accumulator to use for the next candidate.
    The accumulator grows only when the outcome is NONE.
    """
    outcome = classify(candidate, index)
    if outcome.is_none and candidate.normalized_number in batch:
        outcome = MatchOutcome.conflict(None, (REPEATED_IN_BATCH,))
    if outcome.is_none and is_valid(candidate.normalized_number):
        batch = batch.with_identifier(candidate.normalized_number)
    logger.debug(
        "row=%d number=%s outcome=%s",
        candidate.row_number,
        candidate.normalized_number,
        outcome.kind.value,
    )
    return outcome, batch


def reconcile(
    candidates: Iterable[InvoiceCandidate], index: ExistingEntityIndex
) -> list[MatchOutcome]:
    """Match candidates in order, starting from an empty batch."""
    batch = BatchDedupeSet.empty()
    outcomes: list[MatchOutcome] = []
    for candidate in candidates:
        outcome, batch = match(candidate, index, batch)
        outcomes.append(outcome)
    return outcomes


def find_duplicate_groups(invoices: Iterable[ExistingInvoiceRef]) -> list[DuplicateInvoiceGroup]:
    """Group persisted invoices by exact normalized number, keeping groups of 2+.

    Groups come out in order of first appearance. Invoices without digits are
    left out.
    """
    grouped: dict[str, list[ExistingInvoiceRef]] = {}
    for inv in invoices:
        if not is_valid(inv.normalized_number):
            continue
        grouped.setdefault(inv.normalized_number, []).append(inv)
    return [
        DuplicateInvoiceGroup(normalized_number=number, invoices=tuple(members))
        for number, members in grouped.items()
        if len(members) > 1
    ]
