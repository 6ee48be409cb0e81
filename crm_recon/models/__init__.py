"""Domain models for the reconciliation and bulk-import engine."""

from .fields import IGNORE, CanonicalField, FieldMapping
from .matching import BatchDedupeSet, MatchKind, MatchOutcome
from .records import ExistingClientRef, ExistingInvoiceRef, InvoiceCandidate, OwnerRef, RawRecord
from .reports import ClientImportReport, InvoiceImportReport, RowFailure
from .validation import Severity, ValidationIssue, ValidationResult

__all__ = [
    # uploaded rows and snapshot members
    "RawRecord",
    "ExistingInvoiceRef",
    "ExistingClientRef",
    "OwnerRef",
    "InvoiceCandidate",
    # client import
    "CanonicalField",
    "IGNORE",
    "FieldMapping",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    # invoice matching
    "MatchKind",
    "MatchOutcome",
    "BatchDedupeSet",
    # reports
    "ClientImportReport",
    "InvoiceImportReport",
    "RowFailure",
]
