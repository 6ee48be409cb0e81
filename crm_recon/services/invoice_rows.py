from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from ..models.records import InvoiceCandidate, RawRecord
from .normalizer import is_valid, normalize

if TYPE_CHECKING:
    from ..config.loader import InvoiceColumns

"""Turn an uploaded billing row into an InvoiceCandidate.

- number: normalized to digits; a number without digits is invalid
- amount: Decimal (never float); currency symbols and thousands separators
  removed, parentheses mean negative
- date: datetimes (pandas.Timestamp included) become YYYY-MM-DD, text is kept as typed
  (dates are compared as exact strings)
- owner: kept as typed; the invoice executor resolves it to an owner id
"""

__all__ = [
    "InvalidInvoiceRowError",
    "parse_amount",
    "format_issue_date",
    "build_candidate",
]


class InvalidInvoiceRowError(ValueError):
    """Raised when a billing row cannot take part in matching."""


_CURRENCY = re.compile(r"(?i)(ars|usd|eur|\$|€|£)")


def parse_amount(value: Any) -> Decimal:
    if value is None:
        raise InvalidInvoiceRowError("amount is empty")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidInvoiceRowError(f"invalid amount: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value:  # NaN
            raise InvalidInvoiceRowError("amount is empty")
        return Decimal(str(value))

    text = _CURRENCY.sub("", str(value)).replace(" ", "").strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    elif text.startswith("-"):
        negative = True
        text = text[1:]
    if not text:
        raise InvalidInvoiceRowError("amount is empty")

    if "," in text and "." in text:
        # whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        head, _, tail = text.rpartition(",")
        if text.count(",") == 1 and len(tail) in (1, 2):
            text = f"{head}.{tail}"
        else:
            text = text.replace(",", "")
    elif text.count(".") > 1:
        text = text.replace(".", "")

    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise InvalidInvoiceRowError(f"invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise InvalidInvoiceRowError(f"invalid amount: {value!r}")
    return -amount if negative else amount


def format_issue_date(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def build_candidate(row: RawRecord, columns: InvoiceColumns) -> InvoiceCandidate:
    raw_number = row.text(columns.number)
    normalized = normalize(row.get(columns.number))
    if not is_valid(normalized):
        raise InvalidInvoiceRowError(f"invoice number '{raw_number}' has no digits")
    owner = row.text(columns.owner)
    if not owner:
        raise InvalidInvoiceRowError("owner is empty")
    issue_date = format_issue_date(row.get(columns.date))
    if not issue_date:
        raise InvalidInvoiceRowError("date is empty")
    amount = parse_amount(row.get(columns.amount))
    return InvoiceCandidate(
        row_number=row.row_number,
        raw_number=raw_number,
        normalized_number=normalized,
        owner_entity_id=owner,
        issue_date=issue_date,
        amount=amount,
    )
