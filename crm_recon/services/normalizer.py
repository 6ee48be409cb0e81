from __future__ import annotations

import re
from typing import Any

"""Invoice number normalization.

All comparisons between invoice numbers happen on the digits-only form.
Leading zeros are significant: "0001-00012345" normalizes to "000100012345".
"""

__all__ = [
    "normalize",
    "is_valid",
    "is_short",
    "is_long",
    "SHORT_MIN_LEN",
    "SHORT_MAX_LEN",
]

SHORT_MIN_LEN = 4
SHORT_MAX_LEN = 5

_NON_DIGITS = re.compile(r"\D+")


def normalize(raw: Any) -> str:
    """Strip every non-digit character. Total: None and non-strings are accepted.

    >>> normalize("FAC 0001-00012345")
    '000100012345'
    >>> normalize("A-B-C")
    ''
    """
    if raw is None:
        return ""
    if isinstance(raw, float) and raw.is_integer():
        # spreadsheet cells holding plain numbers arrive as floats
        raw = int(raw)
    return _NON_DIGITS.sub("", str(raw))


def is_valid(identifier: str) -> bool:
    """An empty identifier (no digits at all) never takes part in matching."""
    return bool(identifier)


def is_short(identifier: str) -> bool:
    return SHORT_MIN_LEN <= len(identifier) <= SHORT_MAX_LEN


def is_long(identifier: str) -> bool:
    return len(identifier) > SHORT_MAX_LEN
