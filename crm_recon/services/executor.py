from __future__ import annotations

import logging
import time
from dataclasses import replace
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.fields import CanonicalField, FieldMapping
from ..models.matching import BatchDedupeSet, MatchKind
from ..models.records import RawRecord
from ..models.reports import (
    ClientImportReport,
    ConflictRecord,
    CreateTimingAccumulator,
    InvoiceImportReport,
    RowFailure,
)
from ..models.validation import ValidationResult
from .index import ExistingEntityIndex, OwnerDirectory
from .invoice_rows import InvalidInvoiceRowError, build_candidate
from .matcher import match
from .progress import RowProgressTracker

if TYPE_CHECKING:
    from ..config.loader import InvoiceColumns

"""Sequential import executors.

Rows are processed one at a time in the order given; the creation call for
row i returns (or fails) before row i+1 is looked at. A failing create_entity
call only affects its own row: the error is logged, buffered for the error log
and recorded on the report; there is no retry and no abort.

The optional ``cancel`` callable is checked before every create_entity call.
Rows already created stay created.
"""

__all__ = [
    "CreateEntity",
    "ProgressCallback",
    "build_client_payload",
    "run_client_import",
    "run_invoice_import",
]

logger = logging.getLogger(__name__)

CreateEntity = Callable[[dict[str, Any]], Any]
ProgressCallback = Callable[[int, int], None]


def build_client_payload(row: RawRecord, mapping: FieldMapping) -> dict[str, Any]:
    """Mapped fields of the row, without the owner column. Blank cells become None."""
    payload: dict[str, Any] = {}
    for header, field in mapping.mapped_items():
        if field is CanonicalField.OWNER:
            continue
        payload[field.value] = row.text(header) or None
    return payload


def _record_failure(
    error_log: ErrorLogBuffer | None,
    source: str,
    row_number: int,
    error_type: str,
    message: str,
) -> None:
    if error_log is not None:
        error_log.append(
            ErrorRecord.create(source=source, row=row_number, error_type=error_type, message=message)
        )


def _elapsed(start: datetime) -> float:
    return (datetime.now(UTC) - start).total_seconds()


def run_client_import(
    accepted: Sequence[ValidationResult],
    mapping: FieldMapping,
    owners: OwnerDirectory,
    create_entity: CreateEntity,
    *,
    cancel: Callable[[], bool] | None = None,
    on_progress: ProgressCallback | None = None,
    error_log: ErrorLogBuffer | None = None,
    source: str = "<batch>",
) -> ClientImportReport:
    """Create one client per accepted row.

    The owner is resolved again at processing time; a row whose owner (or
    display name) cannot be resolved is skipped: nothing is created and it is
    not counted as a creation failure. Rows that are not included (error rows,
    rows the operator excluded) are never created.
    """
    start = datetime.now(UTC)
    total = len(accepted)
    owner_header = mapping.header_for(CanonicalField.OWNER)
    name_header = mapping.header_for(CanonicalField.DISPLAY_NAME)

    success = 0
    skipped = 0
    excluded = 0
    processed = 0
    cancelled = False
    failures: list[RowFailure] = []
    timings = CreateTimingAccumulator()

    with RowProgressTracker(total, description="Importing clients") as progress:
        for result in accepted:
            row = result.raw
            if not result.included:
                excluded += 1
                logger.warning("row=%d skipped: not included for import", row.row_number)
                processed += 1
                progress.finish_row()
                if on_progress is not None:
                    on_progress(processed, total)
                continue
            display_name = row.text(name_header)
            owner_name = row.text(owner_header)
            owner = owners.resolve(owner_name)
            progress.start_row(display_name or f"row {row.row_number}")

            if not display_name or owner is None:
                skipped += 1
                logger.warning(
                    "row=%d skipped: %s",
                    row.row_number,
                    "missing display name" if not display_name else f"owner '{owner_name}' not found",
                )
            else:
                if cancel is not None and cancel():
                    cancelled = True
                    logger.warning("import cancelled before row=%d", row.row_number)
                    break
                payload = build_client_payload(row, mapping)
                payload["owner_id"] = owner.id
                payload["owner_name"] = owner.display_name
                t0 = time.perf_counter()
                try:
                    entity_id = create_entity(payload)
                except Exception as e:
                    failures.append(RowFailure(row.row_number, display_name, str(e)))
                    logger.error("row=%d client '%s' not created: %s", row.row_number, display_name, e)
                    _record_failure(error_log, source, row.row_number, "ENTITY_CREATE_ERROR", str(e))
                else:
                    success += 1
                    logger.debug("row=%d client '%s' created id=%s", row.row_number, display_name, entity_id)
                finally:
                    timings.add(time.perf_counter() - t0)

            processed += 1
            progress.finish_row()
            progress.set_postfix(ok=success, skipped=skipped, failed=len(failures))
            if on_progress is not None:
                on_progress(processed, total)

    _, avg, p95 = timings.get_stats()
    return ClientImportReport(
        success_count=success,
        total=total,
        skipped_unresolved=skipped,
        skipped_excluded=excluded,
        failures=tuple(failures),
        cancelled=cancelled,
        processed=processed,
        elapsed_seconds=_elapsed(start),
        avg_create_seconds=avg,
        p95_create_seconds=p95,
    )


def run_invoice_import(
    rows: Sequence[RawRecord],
    columns: InvoiceColumns,
    index: ExistingEntityIndex,
    create_entity: CreateEntity,
    *,
    cancel: Callable[[], bool] | None = None,
    on_progress: ProgressCallback | None = None,
    error_log: ErrorLogBuffer | None = None,
    source: str = "<batch>",
    owners: OwnerDirectory | None = None,
) -> InvoiceImportReport:
    """Match and create uploaded invoices.

    The owner cell is resolved against ``owners`` (default: the index's
    directory) by display name or owner id before matching, so matching and
    creation see the owner id. A row whose owner does not resolve is skipped:
    it is not matched, not created and not counted as a failure.

    The batch accumulator starts empty for every call; it is threaded through
    the loop as a value, never shared between runs.
    """
    start = datetime.now(UTC)
    total = len(rows)
    batch = BatchDedupeSet.empty()
    directory = owners if owners is not None else index.owners

    created = 0
    identical = 0
    invalid = 0
    unresolved = 0
    processed = 0
    cancelled = False
    failures: list[RowFailure] = []
    conflicts: list[ConflictRecord] = []
    timings = CreateTimingAccumulator()

    with RowProgressTracker(total, description="Importing invoices") as progress:
        for row in rows:
            progress.start_row(f"row {row.row_number}")
            try:
                candidate = build_candidate(row, columns)
            except InvalidInvoiceRowError as e:
                invalid += 1
                logger.warning("row=%d invalid invoice row: %s", row.row_number, e)
                _record_failure(error_log, source, row.row_number, "INVALID_INVOICE_ROW", str(e))
                candidate = None

            if candidate is not None:
                owner = directory.resolve_reference(candidate.owner_entity_id)
                if owner is None:
                    unresolved += 1
                    logger.warning(
                        "row=%d invoice %s skipped: owner '%s' not found",
                        row.row_number,
                        candidate.raw_number,
                        candidate.owner_entity_id,
                    )
                    candidate = None
                else:
                    candidate = replace(candidate, owner_entity_id=owner.id)

            if candidate is not None:
                outcome, batch = match(candidate, index, batch)
                if outcome.kind is MatchKind.IDENTICAL:
                    identical += 1
                    logger.info("row=%d invoice %s skipped: %s", row.row_number, candidate.raw_number, outcome.message)
                elif outcome.kind is MatchKind.CONFLICT:
                    conflicts.append(
                        ConflictRecord(row.row_number, candidate.raw_number, outcome.reasons)
                    )
                    logger.warning("row=%d invoice %s conflict: %s", row.row_number, candidate.raw_number, outcome.message)
                else:
                    if cancel is not None and cancel():
                        cancelled = True
                        logger.warning("import cancelled before row=%d", row.row_number)
                        break
                    t0 = time.perf_counter()
                    try:
                        entity_id = create_entity(candidate.to_payload())
                    except Exception as e:
                        failures.append(RowFailure(row.row_number, candidate.raw_number, str(e)))
                        logger.error("row=%d invoice %s not created: %s", row.row_number, candidate.raw_number, e)
                        _record_failure(error_log, source, row.row_number, "ENTITY_CREATE_ERROR", str(e))
                    else:
                        created += 1
                        logger.debug("row=%d invoice %s created id=%s", row.row_number, candidate.raw_number, entity_id)
                    finally:
                        timings.add(time.perf_counter() - t0)

            processed += 1
            progress.finish_row()
            progress.set_postfix(created=created, conflicts=len(conflicts), failed=len(failures))
            if on_progress is not None:
                on_progress(processed, total)

    _, avg, p95 = timings.get_stats()
    return InvoiceImportReport(
        created=created,
        total=total,
        skipped_identical=identical,
        skipped_conflict=len(conflicts),
        skipped_invalid=invalid,
        skipped_unresolved=unresolved,
        failures=tuple(failures),
        conflicts=tuple(conflicts),
        cancelled=cancelled,
        processed=processed,
        elapsed_seconds=_elapsed(start),
        avg_create_seconds=avg,
        p95_create_seconds=p95,
    )
