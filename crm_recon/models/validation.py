from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .records import ExistingClientRef, RawRecord

"""Validation issues and per-row results for the client bulk import."""

__all__ = [
    "Severity",
    "ValidationIssue",
    "ValidationResult",
]


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    severity: Severity
    message: str
    conflicting: ExistingClientRef | None = None  # existing client behind the issue

    @classmethod
    def error(cls, message: str, conflicting: ExistingClientRef | None = None) -> ValidationIssue:
        return cls(Severity.ERROR, message, conflicting)

    @classmethod
    def warning(cls, message: str, conflicting: ExistingClientRef | None = None) -> ValidationIssue:
        return cls(Severity.WARNING, message, conflicting)


@dataclass
class ValidationResult:
    """Outcome of validating one uploaded row.

    Only ``included`` changes after construction, and only through the batch
    selector. A row carrying an ERROR issue is never included.
    """
    row_index: int  # 0-based position in the uploaded batch
    raw: RawRecord
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)
    included: bool = True

    def __post_init__(self) -> None:
        self.issues = tuple(self.issues)
        if self.has_error:
            self.included = False

    @property
    def has_error(self) -> bool:
        return any(i.severity is Severity.ERROR for i in self.issues)

    @property
    def has_warning(self) -> bool:
        return any(i.severity is Severity.WARNING for i in self.issues)

    @property
    def first_issue(self) -> ValidationIssue | None:
        return self.issues[0] if self.issues else None

    def set_included(self, value: bool) -> bool:
        """Set the inclusion flag; returns True when the flag actually changed."""
        if self.has_error or self.included == value:
            return False
        self.included = value
        return True
