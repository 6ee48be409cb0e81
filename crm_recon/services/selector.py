from __future__ import annotations

from enum import Enum

from ..models.validation import ValidationResult

"""Operator-side inclusion changes over validated rows.

Rows holding an ERROR issue are never touched by any operation here. Every
mutator returns the number of rows whose ``included`` flag actually changed.
"""

__all__ = [
    "FilterMode",
    "BatchSelector",
]


class FilterMode(Enum):
    ALL = "all"
    ERRORS_ONLY = "errors"
    WARNINGS_ONLY = "warnings"  # warnings without errors
    INCLUDED_ONLY = "included"


class BatchSelector:
    def __init__(self, results: list[ValidationResult]) -> None:
        self.results = results
        self.anchor: int | None = None

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.results):
            raise IndexError(f"row index {index} out of range (0..{len(self.results) - 1})")

    def toggle_one(self, index: int) -> int:
        """Flip one row and anchor later range toggles on it."""
        self._check_index(index)
        self.anchor = index
        row = self.results[index]
        return int(row.set_included(not row.included))

    def toggle_range(self, anchor_index: int, target_index: int, new_state: bool) -> int:
        """Apply ``new_state`` to every row between the two indices, inclusive."""
        self._check_index(anchor_index)
        self._check_index(target_index)
        lo, hi = sorted((anchor_index, target_index))
        return sum(int(r.set_included(new_state)) for r in self.results[lo:hi + 1])

    def click(self, index: int, range_modifier: bool = False) -> int:
        """Checkbox click: a range toggle from the anchor when the modifier is held.

        The range takes the state the clicked row would flip to. Without an
        anchor (or without the modifier) this is ``toggle_one``.
        """
        self._check_index(index)
        if range_modifier and self.anchor is not None:
            new_state = not self.results[index].included
            changed = self.toggle_range(self.anchor, index, new_state)
            self.anchor = index
            return changed
        return self.toggle_one(index)

    def toggle_all(self, new_state: bool) -> int:
        return sum(int(r.set_included(new_state)) for r in self.results)

    def include_all_warnings(self) -> int:
        return self._set_warning_rows(True)

    def exclude_all_warnings(self) -> int:
        return self._set_warning_rows(False)

    def _set_warning_rows(self, new_state: bool) -> int:
        return sum(
            int(r.set_included(new_state))
            for r in self.results
            if r.has_warning and not r.has_error
        )

    def filter(self, mode: FilterMode = FilterMode.ALL) -> list[ValidationResult]:
        if mode is FilterMode.ERRORS_ONLY:
            return [r for r in self.results if r.has_error]
        if mode is FilterMode.WARNINGS_ONLY:
            return [r for r in self.results if r.has_warning and not r.has_error]
        if mode is FilterMode.INCLUDED_ONLY:
            return [r for r in self.results if r.included]
        return list(self.results)

    def accepted(self) -> list[ValidationResult]:
        return self.filter(FilterMode.INCLUDED_ONLY)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.has_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for r in self.results if r.has_warning)

    @property
    def selectable_count(self) -> int:
        return sum(1 for r in self.results if not r.has_error)

    @property
    def selected_count(self) -> int:
        return sum(1 for r in self.results if r.included)
