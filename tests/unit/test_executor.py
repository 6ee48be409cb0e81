from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from crm_recon.config.loader import InvoiceColumns
from crm_recon.logging.error_log import ErrorLogBuffer
from crm_recon.models.fields import CanonicalField, FieldMapping
from crm_recon.models.records import ExistingInvoiceRef, OwnerRef, RawRecord
from crm_recon.models.validation import ValidationIssue, ValidationResult
from crm_recon.services.executor import (
    build_client_payload,
    run_client_import,
    run_invoice_import,
)
from crm_recon.services.index import ExistingEntityIndex, OwnerDirectory


@pytest.fixture()
def mapping() -> FieldMapping:
    m = FieldMapping(["Name", "Owner", "Mail"])
    m.set_mapping("Name", CanonicalField.DISPLAY_NAME)
    m.set_mapping("Owner", CanonicalField.OWNER)
    m.set_mapping("Mail", CanonicalField.EMAIL)
    return m


@pytest.fixture()
def owners() -> OwnerDirectory:
    return OwnerDirectory.from_owners([OwnerRef("u1", "Ana Perez"), OwnerRef("u2", "Bruno Diaz")])


def _accepted(names_owners: list[tuple[str | None, str]]) -> list[ValidationResult]:
    return [
        ValidationResult(
            row_index=i,
            raw=RawRecord.from_mapping(i + 1, {"Name": name, "Owner": owner, "Mail": None}),
        )
        for i, (name, owner) in enumerate(names_owners)
    ]


class RecordingCreate:
    """create_entity double: records payloads, fails for the configured labels."""

    def __init__(self, fail_for: set[str] = frozenset(), key: str = "display_name") -> None:
        self.fail_for = fail_for
        self.key = key
        self.payloads: list[dict] = []

    def __call__(self, payload: dict) -> str:
        self.payloads.append(payload)
        if payload[self.key] in self.fail_for:
            raise RuntimeError("duplicate key value violates unique constraint")
        return f"id-{len(self.payloads)}"


def test_build_client_payload_skips_owner(mapping):
    row = RawRecord.from_mapping(1, {"Name": " Globex ", "Owner": "Ana Perez", "Mail": None})
    assert build_client_payload(row, mapping) == {"display_name": "Globex", "email": None}


def test_one_failure_does_not_stop_the_batch(mapping, owners, temp_workdir: Path):
    accepted = _accepted([(f"Client {i}", "Ana Perez") for i in range(1, 6)])
    create = RecordingCreate(fail_for={"Client 3"})
    error_log = ErrorLogBuffer()

    report = run_client_import(accepted, mapping, owners, create, error_log=error_log, source="c.xlsx")

    assert report.success_count == 4
    assert report.total == 5
    assert report.processed == 5
    assert not report.all_succeeded
    assert [f.row_number for f in report.failures] == [3]
    assert report.failures[0].label == "Client 3"
    assert "duplicate key" in report.failures[0].reason
    # creation order is the accepted order
    assert [p["display_name"] for p in create.payloads] == [f"Client {i}" for i in range(1, 6)]

    records = error_log.records
    assert len(records) == 1
    assert (records[0].source, records[0].row, records[0].error_type) == ("c.xlsx", 3, "ENTITY_CREATE_ERROR")


def test_payload_carries_resolved_owner(mapping, owners):
    create = RecordingCreate()
    run_client_import(_accepted([("Globex", "bruno diaz")]), mapping, owners, create)
    assert create.payloads == [
        {"display_name": "Globex", "email": None, "owner_id": "u2", "owner_name": "Bruno Diaz"}
    ]


def test_blank_mapped_cells_are_sent_as_none(mapping, owners):
    create = RecordingCreate()
    row = RawRecord.from_mapping(1, {"Name": "Globex", "Owner": "Ana Perez", "Mail": "   "})
    run_client_import([ValidationResult(row_index=0, raw=row)], mapping, owners, create)
    assert create.payloads[0]["email"] is None


def test_rows_not_included_are_never_created(mapping, owners):
    accepted = _accepted([("Globex", "Ana Perez"), ("Initech", "Ana Perez"), ("Hooli", "Ana Perez")])
    accepted[1] = ValidationResult(
        row_index=1,
        raw=accepted[1].raw,
        issues=(ValidationIssue.error("tax id already registered"),),
    )
    accepted[2].set_included(False)
    create = RecordingCreate()
    report = run_client_import(accepted, mapping, owners, create)
    assert [p["display_name"] for p in create.payloads] == ["Globex"]
    assert report.success_count == 1
    assert report.skipped_excluded == 2
    assert report.failed_count == 0
    assert report.processed == 3


def test_unresolved_rows_are_skipped_not_failed(mapping, owners):
    accepted = _accepted([("Globex", "Ana Perez"), ("Initech", "Ghost"), (None, "Ana Perez")])
    create = RecordingCreate()
    report = run_client_import(accepted, mapping, owners, create)
    assert report.success_count == 1
    assert report.skipped_unresolved == 2
    assert report.failed_count == 0
    assert len(create.payloads) == 1


def test_progress_is_reported_after_every_row(mapping, owners):
    calls: list[tuple[int, int]] = []
    accepted = _accepted([("A", "Ana Perez"), ("B", "Ghost"), ("C", "Ana Perez")])
    run_client_import(
        accepted, mapping, owners, RecordingCreate(fail_for={"C"}),
        on_progress=lambda done, total: calls.append((done, total)),
    )
    assert calls == [(1, 3), (2, 3), (3, 3)]


def test_cancel_is_checked_before_each_create(mapping, owners):
    accepted = _accepted([(f"Client {i}", "Ana Perez") for i in range(1, 6)])
    create = RecordingCreate()
    report = run_client_import(
        accepted, mapping, owners, create, cancel=lambda: len(create.payloads) >= 2
    )
    assert report.cancelled
    assert report.success_count == 2
    assert report.processed == 2
    assert len(create.payloads) == 2
    assert not report.all_succeeded


def test_empty_batch(mapping, owners):
    report = run_client_import([], mapping, owners, RecordingCreate())
    assert report.total == 0
    assert report.all_succeeded
    assert report.avg_create_seconds == 0.0


def _invoice_rows() -> list[RawRecord]:
    data = [
        ("0001-00008313", "u1", "2024-03-01", "1500.00"),  # identical to existing
        ("8313", "u2", "2024-03-05", "200"),  # suffix collision
        ("FAC-0002-00000077", "u1", "2024-03-07", "99,90"),  # new
        ("0002-00000077", "u1", "2024-03-07", "99.90"),  # repeat of the row above
        ("S/N", "u1", "2024-03-08", "10"),  # no digits
        ("555555", "u1", "2024-03-09", "10"),  # store rejects it
    ]
    return [
        RawRecord.from_mapping(
            i + 1, {"invoice_number": n, "owner_id": o, "date": d, "amount": a}
        )
        for i, (n, o, d, a) in enumerate(data)
    ]


@pytest.fixture()
def invoice_index() -> ExistingEntityIndex:
    ref = ExistingInvoiceRef(
        normalized_number="000100008313",
        owner_entity_id="u1",
        issue_date="2024-03-01",
        amount=Decimal("1500.0"),
        entity_id="i1",
    )
    owners = OwnerDirectory.from_owners([OwnerRef("u1", "Ana Perez"), OwnerRef("u2", "Bruno Diaz")])
    return ExistingEntityIndex(invoices=(ref,), owners=owners)


def test_invoice_import_counts(invoice_index, temp_workdir: Path):
    create = RecordingCreate(fail_for={"555555"}, key="invoice_number")
    error_log = ErrorLogBuffer()
    report = run_invoice_import(
        _invoice_rows(), InvoiceColumns(), invoice_index, create, error_log=error_log
    )

    assert report.total == 6
    assert report.created == 1
    assert report.skipped_identical == 1
    assert report.skipped_conflict == 2
    assert report.skipped_invalid == 1
    assert report.failed_count == 1
    assert report.processed == 6
    assert [c.row_number for c in report.conflicts] == [2, 4]
    assert "date differs" in report.conflicts[0].reasons[0]
    assert report.conflicts[1].reasons == ("repeated within this batch",)

    assert create.payloads[0] == {
        "invoice_number": "000200000077",
        "owner_id": "u1",
        "date": "2024-03-07",
        "amount": Decimal("99.90"),
    }
    assert sorted(r.error_type for r in error_log.records) == ["ENTITY_CREATE_ERROR", "INVALID_INVOICE_ROW"]


def test_failed_create_still_claims_its_number(invoice_index):
    rows = [
        RawRecord.from_mapping(1, {"invoice_number": "555555", "owner_id": "u1", "date": "d", "amount": 1}),
        RawRecord.from_mapping(2, {"invoice_number": "555555", "owner_id": "u1", "date": "d", "amount": 1}),
    ]
    create = RecordingCreate(fail_for={"555555"}, key="invoice_number")
    report = run_invoice_import(rows, InvoiceColumns(), invoice_index, create)
    assert len(create.payloads) == 1
    assert report.failed_count == 1
    assert report.skipped_conflict == 1


def test_invoice_cancel(invoice_index):
    rows = [
        RawRecord.from_mapping(i, {"invoice_number": f"90000{i}", "owner_id": "u1", "date": "d", "amount": 1})
        for i in range(1, 4)
    ]
    create = RecordingCreate(key="invoice_number")
    report = run_invoice_import(
        rows, InvoiceColumns(), invoice_index, create, cancel=lambda: len(create.payloads) >= 1
    )
    assert report.cancelled
    assert report.created == 1
    assert report.processed == 1


def test_owner_named_by_display_name_matches_existing_invoice():
    ref = ExistingInvoiceRef(
        normalized_number="0000100008313",
        owner_entity_id="u1",
        issue_date="2024-05-01",
        amount=Decimal("1500"),
        entity_id="i9",
    )
    index = ExistingEntityIndex(
        invoices=(ref,),
        owners=OwnerDirectory.from_owners([OwnerRef("u1", "Ana Perez")]),
    )
    rows = [
        RawRecord.from_mapping(1, {"invoice_number": "8313", "owner_id": "ana perez", "date": "2024-05-01", "amount": 1500}),
        RawRecord.from_mapping(2, {"invoice_number": "999999", "owner_id": "Nobody Known", "date": "2024-05-01", "amount": 10}),
        RawRecord.from_mapping(3, {"invoice_number": "777777", "owner_id": "Ana Perez", "date": "2024-05-02", "amount": 10}),
    ]
    create = RecordingCreate(key="invoice_number")
    error_log = ErrorLogBuffer()

    report = run_invoice_import(rows, InvoiceColumns(), index, create, error_log=error_log)

    assert report.skipped_identical == 1
    assert report.skipped_conflict == 0
    assert report.skipped_unresolved == 1
    assert report.failed_count == 0
    assert report.created == 1
    assert create.payloads == [
        {"invoice_number": "777777", "owner_id": "u1", "date": "2024-05-02", "amount": Decimal("10")}
    ]
    # an unknown owner is a silent skip, not an error log entry
    assert error_log.records == []


def test_explicit_owner_directory_overrides_index(invoice_index):
    rows = [RawRecord.from_mapping(1, {"invoice_number": "424242", "owner_id": "Carla", "date": "d", "amount": 1})]
    create = RecordingCreate(key="invoice_number")
    report = run_invoice_import(
        rows, InvoiceColumns(), invoice_index, create,
        owners=OwnerDirectory.from_owners([OwnerRef("u7", "Carla")]),
    )
    assert report.created == 1
    assert create.payloads[0]["owner_id"] == "u7"


def test_owner_directory_resolves_name_then_id(owners):
    assert owners.resolve_reference(" BRUNO diaz ").id == "u2"
    assert owners.resolve_reference("u1").display_name == "Ana Perez"
    assert owners.resolve_reference("Nobody") is None
    assert owners.resolve_reference(None) is None
