from __future__ import annotations

from decimal import Decimal

from crm_recon.models.matching import REPEATED_IN_BATCH, BatchDedupeSet, MatchKind, MatchOutcome
from crm_recon.models.records import ExistingInvoiceRef, InvoiceCandidate
from crm_recon.services.index import ExistingEntityIndex
from crm_recon.services.matcher import (
    classify,
    field_disagreements,
    find_duplicate_groups,
    match,
    numbers_match,
    reconcile,
)
from crm_recon.services.normalizer import normalize


def _ref(number: str, owner: str = "u1", date: str = "2024-03-01", amount: str = "100.00",
         entity_id: str | None = None, credit_note: bool = False) -> ExistingInvoiceRef:
    return ExistingInvoiceRef(
        normalized_number=normalize(number),
        owner_entity_id=owner,
        issue_date=date,
        amount=Decimal(amount),
        entity_id=entity_id,
        raw_number=number,
        credit_note=credit_note,
    )


def _cand(number: str, owner: str = "u1", date: str = "2024-03-01", amount: str = "100.00",
          row: int = 1) -> InvoiceCandidate:
    return InvoiceCandidate(
        row_number=row,
        raw_number=number,
        normalized_number=normalize(number),
        owner_entity_id=owner,
        issue_date=date,
        amount=Decimal(amount),
    )


def _index(*refs: ExistingInvoiceRef) -> ExistingEntityIndex:
    return ExistingEntityIndex(invoices=tuple(refs))


class TestNumbersMatch:
    def test_exact(self):
        assert numbers_match("123", "123")
        assert numbers_match("000100012345", "000100012345")

    def test_suffix_is_symmetric(self):
        assert numbers_match("8313", "0000100008313")
        assert numbers_match("0000100008313", "8313")

    def test_suffix_needs_short_and_long(self):
        # 3 digits is not a short identifier
        assert not numbers_match("313", "0000100008313")
        # two long identifiers only match exactly
        assert not numbers_match("123456", "99123456")
        # two short identifiers only match exactly
        assert not numbers_match("2345", "12345")

    def test_empty_never_matches(self):
        assert not numbers_match("", "")
        assert not numbers_match("", "1234")


def test_identical_wins_over_earlier_conflict():
    conflicting = _ref("8313", owner="u2", entity_id="a")
    identical = _ref("0000100008313", entity_id="b")
    outcome = classify(_cand("0000100008313"), _index(conflicting, identical))
    assert outcome.kind is MatchKind.IDENTICAL
    assert outcome.reference is identical


def test_suffix_match_identical():
    outcome = classify(_cand("8313"), _index(_ref("0000100008313")))
    assert outcome.is_identical


def test_date_mismatch_is_conflict():
    ref = _ref("0001-00000077", entity_id="42")
    outcome = classify(_cand("0001-00000077", date="2024-03-02"), _index(ref))
    assert outcome.is_conflict
    assert outcome.reference is ref
    assert len(outcome.reasons) == 1
    assert "date differs (2024-03-02 vs 2024-03-01)" in outcome.reasons[0]
    assert "#0001-00000077 (id=42)" in outcome.message


def test_suffix_match_with_date_mismatch_is_conflict():
    ref = _ref("0000100008313", date="2024-04-01", amount="1500", entity_id="7")
    outcome = classify(_cand("8313", date="2024-05-01", amount="1500"), _index(ref))
    assert outcome.is_conflict
    assert outcome.reference is ref
    assert len(outcome.reasons) == 1
    assert "date differs (2024-05-01 vs 2024-04-01)" in outcome.reasons[0]


def test_identical_message_without_reference():
    assert MatchOutcome(MatchKind.IDENTICAL).message == "identical to existing invoice"
    assert MatchOutcome.identical(_ref("1234", entity_id="9")).message == (
        "identical to existing invoice #1234 (id=9)"
    )



def test_conflict_reports_first_disagreeing_record():
    first = _ref("123456", owner="u2", entity_id="1")
    second = _ref("123456", amount="5", entity_id="2")
    outcome = classify(_cand("123456"), _index(first, second))
    assert outcome.is_conflict
    assert outcome.reference is first


def test_amount_tolerance():
    ref = _ref("123456", amount="100.00")
    assert field_disagreements(_cand("123456", amount="100.05"), ref) == []
    reasons = field_disagreements(_cand("123456", amount="100.10"), ref)
    assert reasons == ["amount differs (100.10 vs 100.00)"]


def test_all_disagreements_listed():
    reasons = field_disagreements(
        _cand("1", owner="u9", date="2024-01-01", amount="1"), _ref("1")
    )
    assert [r.split(" ")[0] for r in reasons] == ["owner", "date", "amount"]


def test_repeat_within_batch():
    outcomes = reconcile([_cand("123456", row=1), _cand("123456", row=2)], _index())
    assert outcomes[0].is_none
    assert outcomes[1].is_conflict
    assert outcomes[1].reasons == (REPEATED_IN_BATCH,)
    assert outcomes[1].reference is None


def test_batch_grows_only_on_none():
    index = _index(_ref("123456"))
    start = BatchDedupeSet.empty()
    outcome, batch = match(_cand("123456"), index, start)
    assert outcome.is_identical
    assert len(batch) == 0

    outcome, batch = match(_cand("654321"), index, batch)
    assert outcome.is_none
    assert "654321" in batch
    # the value passed in is never mutated
    assert len(start) == 0


def test_identical_rows_do_not_count_as_batch_repeats():
    index = _index(_ref("123456"))
    outcomes = reconcile([_cand("123456"), _cand("123456")], index)
    assert [o.kind for o in outcomes] == [MatchKind.IDENTICAL, MatchKind.IDENTICAL]


def test_empty_number_is_none_and_not_accumulated():
    outcome, batch = match(_cand("S/N"), _index(_ref("1234")), BatchDedupeSet.empty())
    assert outcome.is_none
    assert len(batch) == 0


def test_find_duplicate_groups():
    a = _ref("0001-0001", entity_id="1")
    b = _ref("00010001", entity_id="2", credit_note=True)
    c = _ref("0002-0001", entity_id="3")
    blank = _ref("S/N", entity_id="4")
    groups = find_duplicate_groups([a, c, blank, b, _ref("S/N", entity_id="5")])
    assert len(groups) == 1
    assert groups[0].normalized_number == "00010001"
    assert groups[0].invoices == (a, b)
    assert groups[0].has_credit_note
