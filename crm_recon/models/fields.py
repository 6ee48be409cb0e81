from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Final, Literal, Union

"""Canonical client fields and the header -> field mapping.

FieldMapping keeps two views in sync: header -> target and field -> claiming
header. Every assignment goes through ``set_mapping`` so the rule "at most one
header per canonical field" is enforced in a single place.
"""

__all__ = [
    "CanonicalField",
    "IGNORE",
    "MappingTarget",
    "FieldMapping",
    "parse_target",
]


class CanonicalField(str, Enum):
    """Writable attributes of a client entity."""
    DISPLAY_NAME = "display_name"
    LEGAL_NAME = "legal_name"
    TAX_ID = "tax_id"
    TAX_CONDITION = "tax_condition"
    PROVINCE = "province"
    LOCALITY = "locality"
    ENTITY_TYPE = "entity_type"
    INDUSTRY = "industry"
    EMAIL = "email"
    PHONE = "phone"
    NOTES = "notes"
    OWNER = "owner"


IGNORE: Final = "ignore"

MappingTarget = Union[CanonicalField, Literal["ignore"]]


def parse_target(value: str) -> MappingTarget:
    """Parse a field name as written in config files or on the command line."""
    text = value.strip().lower()
    if text == IGNORE:
        return IGNORE
    try:
        return CanonicalField(text)
    except ValueError as e:
        allowed = ", ".join([IGNORE] + [f.value for f in CanonicalField])
        raise ValueError(f"unknown field '{value}' (allowed: {allowed})") from e


class FieldMapping:
    """Header label -> CanonicalField | IGNORE, one header per field."""

    def __init__(self, headers: Iterable[str] = ()) -> None:
        self._targets: dict[str, MappingTarget] = {}
        self._claims: dict[CanonicalField, str] = {}
        for header in headers:
            self._targets.setdefault(header, IGNORE)

    def copy(self) -> FieldMapping:
        clone = FieldMapping()
        clone._targets = dict(self._targets)
        clone._claims = dict(self._claims)
        return clone

    def get(self, header: str) -> MappingTarget:
        return self._targets.get(header, IGNORE)

    def header_for(self, field: CanonicalField) -> str | None:
        return self._claims.get(field)

    def set_mapping(self, header: str, target: MappingTarget) -> str | None:
        """Assign ``target`` to ``header``.

        Returns the header that previously held ``target`` and was demoted to
        IGNORE, or None when nothing was demoted.
        """
        previous_target = self._targets.get(header, IGNORE)
        if previous_target != IGNORE and self._claims.get(previous_target) == header:  # type: ignore[arg-type]
            del self._claims[previous_target]  # type: ignore[arg-type]

        demoted: str | None = None
        if target != IGNORE:
            holder = self._claims.get(target)  # type: ignore[arg-type]
            if holder is not None and holder != header:
                self._targets[holder] = IGNORE
                demoted = holder
            self._claims[target] = header  # type: ignore[index]
        self._targets[header] = target
        return demoted

    def apply_presets(self, presets: dict[str, MappingTarget]) -> None:
        """Apply configured assignments; headers absent from the source are skipped."""
        for header, target in presets.items():
            if header in self._targets:
                self.set_mapping(header, target)

    @property
    def headers(self) -> list[str]:
        return list(self._targets)

    def mapped_items(self) -> list[tuple[str, CanonicalField]]:
        """(header, field) pairs for non-ignored headers, in header order."""
        return [(h, t) for h, t in self._targets.items() if t != IGNORE]  # type: ignore[misc]

    def to_dict(self) -> dict[str, str]:
        return {h: (t if t == IGNORE else t.value) for h, t in self._targets.items()}  # type: ignore[union-attr]

    def __iter__(self) -> Iterator[str]:
        return iter(self._targets)

    def __contains__(self, header: object) -> bool:
        return header in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def __repr__(self) -> str:  # pragma: no cover (debug aid)
        return f"FieldMapping({self.to_dict()!r})"
