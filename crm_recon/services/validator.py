from __future__ import annotations

import logging
from collections.abc import Iterable

from ..models.fields import CanonicalField, FieldMapping
from ..models.records import RawRecord
from ..models.validation import ValidationIssue, ValidationResult
from .index import ExistingEntityIndex, OwnerDirectory
from .similarity import best_match, is_near_duplicate

"""Row validator for the client bulk import.

Issues per row, in this order:
- ERROR   missing display name
- ERROR   owner column not mapped / owner blank / owner unknown
- ERROR   tax id equal to an existing client's tax id
- WARNING display name close to (but not the same as) an existing client name

Problems in the data never raise; they become issues on the result. A row
with any ERROR starts (and stays) excluded.
"""

__all__ = [
    "validate_row",
    "validate_rows",
]

logger = logging.getLogger(__name__)


def validate_row(
    row_index: int,
    row: RawRecord,
    mapping: FieldMapping,
    index: ExistingEntityIndex,
    owners: OwnerDirectory,
) -> ValidationResult:
    issues: list[ValidationIssue] = []

    display_name = row.text(mapping.header_for(CanonicalField.DISPLAY_NAME))
    if not display_name:
        issues.append(ValidationIssue.error("missing display name"))

    owner_header = mapping.header_for(CanonicalField.OWNER)
    if owner_header is None:
        issues.append(ValidationIssue.error("owner column is not mapped"))
    else:
        owner_name = row.text(owner_header)
        if not owner_name:
            issues.append(ValidationIssue.error("missing owner"))
        elif owners.resolve(owner_name) is None:
            issues.append(ValidationIssue.error(f"unknown owner '{owner_name}'"))

    tax_header = mapping.header_for(CanonicalField.TAX_ID)
    if tax_header is not None:
        tax_id = row.text(tax_header)
        existing = index.client_by_tax_id(tax_id) if tax_id else None
        if existing is not None:
            issues.append(
                ValidationIssue.error(
                    f"a client with tax id {tax_id} already exists ('{existing.display_name}')",
                    conflicting=existing,
                )
            )

    if display_name and index.clients:
        found = best_match(display_name, index.display_names())
        if found is not None and is_near_duplicate(found[1]):
            closest = index.clients[found[0]]
            issues.append(
                ValidationIssue.warning(
                    f"similar to existing client '{closest.display_name}' (score {found[1]:.2f})",
                    conflicting=closest,
                )
            )

    return ValidationResult(row_index=row_index, raw=row, issues=tuple(issues))


def validate_rows(
    rows: Iterable[RawRecord],
    mapping: FieldMapping,
    index: ExistingEntityIndex,
    owners: OwnerDirectory | None = None,
) -> list[ValidationResult]:
    """Validate every row; ``owners`` defaults to the directory held by ``index``."""
    directory = owners if owners is not None else index.owners
    results = [
        validate_row(i, row, mapping, index, directory) for i, row in enumerate(rows)
    ]
    errors = sum(1 for r in results if r.has_error)
    warnings = sum(1 for r in results if r.has_warning and not r.has_error)
    logger.info("validated rows=%d errors=%d warnings=%d", len(results), errors, warnings)
    return results
