from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

"""Record models for uploaded rows and the persisted entity snapshot.

RawRecord is what the tabular reader hands over for one uploaded row. The
Existing*Ref / OwnerRef classes are the read-only members of the snapshot
loaded once per validation pass (see services.index).
"""

__all__ = [
    "RawRecord",
    "ExistingInvoiceRef",
    "ExistingClientRef",
    "OwnerRef",
    "InvoiceCandidate",
]


@dataclass(frozen=True)
class RawRecord:
    """One uploaded row as ordered (header label, raw value) pairs.

    row_number is 1-based relative to the first data row so that operators can
    find the row in their spreadsheet.
    """
    row_number: int
    cells: tuple[tuple[str, Any], ...]

    @classmethod
    def from_mapping(cls, row_number: int, values: dict[str, Any]) -> RawRecord:
        return cls(row_number=row_number, cells=tuple(values.items()))

    @property
    def headers(self) -> list[str]:
        return [h for h, _ in self.cells]

    def get(self, header: str | None, default: Any = None) -> Any:
        if header is None:
            return default
        for h, value in self.cells:
            if h == header:
                return value
        return default

    def text(self, header: str | None) -> str:
        """Cell value as stripped text; None and missing cells become ''."""
        value = self.get(header)
        if value is None:
            return ""
        return str(value).strip()

    def as_dict(self) -> dict[str, Any]:
        return dict(self.cells)


@dataclass(frozen=True)
class ExistingInvoiceRef:
    """Persisted invoice as seen by the matcher."""
    normalized_number: str  # digits only
    owner_entity_id: str
    issue_date: str  # compared as an exact string
    amount: Decimal
    entity_id: str | None = None
    raw_number: str | None = None  # number as stored, for messages
    credit_note: bool = False

    @property
    def label(self) -> str:
        number = self.raw_number or self.normalized_number
        if self.entity_id:
            return f"#{number} (id={self.entity_id})"
        return f"#{number}"


@dataclass(frozen=True)
class ExistingClientRef:
    display_name: str
    legal_name: str = ""
    tax_id: str = ""
    entity_id: str | None = None


@dataclass(frozen=True)
class OwnerRef:
    id: str
    display_name: str


@dataclass(frozen=True)
class InvoiceCandidate:
    """An uploaded invoice row after number normalization and amount parsing."""
    row_number: int
    raw_number: str
    normalized_number: str
    owner_entity_id: str
    issue_date: str
    amount: Decimal

    def to_payload(self) -> dict[str, Any]:
        return {
            "invoice_number": self.normalized_number,
            "owner_id": self.owner_entity_id,
            "date": self.issue_date,
            "amount": self.amount,
        }
