from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Iterable

from ..models.fields import IGNORE, CanonicalField, FieldMapping

"""Header -> canonical field inference for uploaded client spreadsheets.

Headers are matched against ordered keyword groups; the first group that
matches wins. A field already claimed by an earlier header (or by the mapping
passed in) is not claimed twice: the later header stays IGNORE.
"""

__all__ = [
    "KEYWORD_GROUPS",
    "normalize_header",
    "guess_field",
    "infer_mapping",
]

logger = logging.getLogger(__name__)

# Order matters: owner synonyms are tested first so "Email Asesor" or
# "Nombre del vendedor" go to OWNER, and legal name precedes display name so
# "Nombre / Razón Social" goes to LEGAL_NAME.
KEYWORD_GROUPS: tuple[tuple[CanonicalField, tuple[str, ...]], ...] = (
    (CanonicalField.OWNER, (
        "propietario", "asesor", "asesora", "vendedor", "ejecutivo", "responsable",
        "owner", "advisor", "account manager",
    )),
    (CanonicalField.TAX_ID, (
        "cuit", "cuil", "nif", "rut", "tax id", "taxid", "vat number", "nro documento",
    )),
    (CanonicalField.LEGAL_NAME, (
        "razon social", "legal name", "nombre legal", "company legal name",
    )),
    (CanonicalField.DISPLAY_NAME, (
        "denominacion", "nombre", "nombre de fantasia", "fantasia", "cliente",
        "empresa", "display name", "name", "company",
    )),
    (CanonicalField.EMAIL, ("email", "e mail", "mail", "correo")),
    (CanonicalField.PHONE, (
        "telefono", "tel", "cel", "celular", "movil", "phone", "whatsapp",
    )),
    (CanonicalField.PROVINCE, ("provincia", "province", "state")),
    (CanonicalField.LOCALITY, ("localidad", "ciudad", "city", "locality", "municipio")),
    (CanonicalField.TAX_CONDITION, (
        "condicion iva", "condicion fiscal", "iva", "tax condition",
    )),
    (CanonicalField.INDUSTRY, ("rubro", "industria", "industry", "categoria", "category", "sector")),
    (CanonicalField.ENTITY_TYPE, ("tipo entidad", "tipo de entidad", "entity type", "tipo")),
    (CanonicalField.NOTES, ("observaciones", "observacion", "notas", "notes", "comentarios")),
)

# keywords this long may also match inside glued headers like "RazonSocial"
_COMPACT_MIN_LEN = 5

_SEPARATORS = re.compile(r"[\W_]+", re.UNICODE)


def normalize_header(text: object) -> str:
    """Case-fold, strip diacritics and collapse separators to single spaces.

    >>> normalize_header("  Razón_Social / Nº ")
    'razon social no'
    """
    if text is None:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(text).casefold())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _SEPARATORS.sub(" ", stripped).strip()


def _compile_groups() -> list[tuple[CanonicalField, list[str]]]:
    return [(f, [normalize_header(k) for k in keywords]) for f, keywords in KEYWORD_GROUPS]


_GROUPS = _compile_groups()


def _keyword_matches(keyword: str, header: str, compact_header: str) -> bool:
    if f" {keyword} " in f" {header} ":
        return True
    compact_keyword = keyword.replace(" ", "")
    return len(compact_keyword) >= _COMPACT_MIN_LEN and compact_keyword in compact_header


def guess_field(header: str) -> CanonicalField | None:
    """First keyword group matching the header, or None."""
    normalized = normalize_header(header)
    if not normalized:
        return None
    compact = normalized.replace(" ", "")
    for field, keywords in _GROUPS:
        if any(_keyword_matches(k, normalized, compact) for k in keywords):
            return field
    return None


def infer_mapping(headers: Iterable[str], existing: FieldMapping | None = None) -> FieldMapping:
    """Guess a mapping for every header not already mapped to a field.

    ``existing`` is not modified. Headers are visited in source order, so when
    two headers guess the same field the earlier one keeps it.
    """
    mapping = existing.copy() if existing is not None else FieldMapping()
    for header in headers:
        if mapping.get(header) != IGNORE:
            continue
        field = guess_field(header)
        if field is None:
            mapping.set_mapping(header, IGNORE)
            continue
        holder = mapping.header_for(field)
        if holder is not None and holder != header:
            logger.debug("header '%s' guessed %s but '%s' already holds it", header, field.value, holder)
            mapping.set_mapping(header, IGNORE)
            continue
        mapping.set_mapping(header, field)
    return mapping
