from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol

import yaml
from psycopg2 import sql

from ..models.fields import CanonicalField
from ..models.records import ExistingClientRef, ExistingInvoiceRef, OwnerRef
from ..services.normalizer import normalize

"""Entity store adapters.

The engine only needs the operations of ``EntityStore``. Two adapters:

- PostgresEntityStore: psycopg2 cursor. Each insert runs inside a SAVEPOINT so
  a failing row is rolled back alone and the surrounding transaction stays
  usable for the next row. Committing is the caller's job (cli).
- SnapshotEntityStore: YAML/JSON snapshot file, creation in memory. Used for
  mock mode and tests.
"""

__all__ = [
    "EntityCreateError",
    "EntityStore",
    "PostgresEntityStore",
    "SnapshotEntityStore",
]

logger = logging.getLogger(__name__)

_SAVEPOINT = "crm_recon_row"

CLIENT_COLUMNS = {f.value for f in CanonicalField if f is not CanonicalField.OWNER} | {
    "owner_id",
    "owner_name",
}
INVOICE_COLUMNS = {"invoice_number", "owner_id", "date", "amount"}


class EntityCreateError(Exception):
    """Creation of a single entity failed; the message is shown to the operator."""


class EntityStore(Protocol):
    def list_existing_invoices(self) -> list[ExistingInvoiceRef]: ...

    def list_existing_clients(self) -> list[ExistingClientRef]: ...

    def list_known_owners(self) -> list[OwnerRef]: ...

    def create_client(self, payload: dict[str, Any]) -> str: ...

    def create_invoice(self, payload: dict[str, Any]) -> str: ...


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _table(name: str) -> sql.Identifier:
    return sql.Identifier(*name.split("."))


class PostgresEntityStore:
    def __init__(self, cursor: Any, *, clients: str, invoices: str, owners: str) -> None:
        self.cursor = cursor
        self.clients_table = clients
        self.invoices_table = invoices
        self.owners_table = owners

    def _select(self, table: str, columns: list[str]) -> list[tuple[Any, ...]]:
        query = sql.SQL("SELECT {cols} FROM {table}").format(
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            table=_table(table),
        )
        self.cursor.execute(query)
        return list(self.cursor.fetchall())

    def list_existing_invoices(self) -> list[ExistingInvoiceRef]:
        rows = self._select(self.invoices_table, ["id", "invoice_number", "owner_id", "date", "amount"])
        return [
            ExistingInvoiceRef(
                normalized_number=normalize(number),
                owner_entity_id=_as_text(owner_id),
                issue_date=_as_text(issued),
                amount=_as_decimal(amount),
                entity_id=_as_text(entity_id),
                raw_number=_as_text(number),
            )
            for entity_id, number, owner_id, issued, amount in rows
        ]

    def list_existing_clients(self) -> list[ExistingClientRef]:
        rows = self._select(self.clients_table, ["id", "display_name", "legal_name", "tax_id"])
        return [
            ExistingClientRef(
                display_name=_as_text(name),
                legal_name=_as_text(legal),
                tax_id=_as_text(tax_id),
                entity_id=_as_text(entity_id),
            )
            for entity_id, name, legal, tax_id in rows
        ]

    def list_known_owners(self) -> list[OwnerRef]:
        rows = self._select(self.owners_table, ["id", "display_name"])
        return [OwnerRef(id=_as_text(i), display_name=_as_text(n)) for i, n in rows]

    def _insert(self, table: str, payload: dict[str, Any], allowed: set[str]) -> str:
        unknown = sorted(set(payload) - allowed)
        if unknown:
            raise EntityCreateError(f"unknown columns for {table}: {unknown}")
        columns = list(payload)
        query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({vals}) RETURNING id").format(
            table=_table(table),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            vals=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        self.cursor.execute(f"SAVEPOINT {_SAVEPOINT}")
        try:
            self.cursor.execute(query, [payload[c] for c in columns])
            row = self.cursor.fetchone()
        except Exception as e:
            try:
                self.cursor.execute(f"ROLLBACK TO SAVEPOINT {_SAVEPOINT}")
            except Exception as rollback_e:
                logger.error("rollback to savepoint failed: %s", rollback_e)
            raise EntityCreateError(str(e).strip()) from e
        self.cursor.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")
        if not row:
            raise EntityCreateError(f"insert into {table} returned no id")
        return _as_text(row[0])

    def create_client(self, payload: dict[str, Any]) -> str:
        return self._insert(self.clients_table, payload, CLIENT_COLUMNS)

    def create_invoice(self, payload: dict[str, Any]) -> str:
        return self._insert(self.invoices_table, payload, INVOICE_COLUMNS)


class SnapshotEntityStore:
    """In-memory store seeded from a snapshot file.

    Snapshot layout (YAML or JSON)::

        owners:   [{id, display_name}]
        clients:  [{id, display_name, legal_name, tax_id}]
        invoices: [{id, invoice_number, owner_id, date, amount, credit_note}]
    """

    def __init__(
        self,
        owners: list[OwnerRef] | None = None,
        clients: list[ExistingClientRef] | None = None,
        invoices: list[ExistingInvoiceRef] | None = None,
    ) -> None:
        self.owners = list(owners or [])
        self.clients = list(clients or [])
        self.invoices = list(invoices or [])
        self.created_clients: list[dict[str, Any]] = []
        self.created_invoices: list[dict[str, Any]] = []

    @classmethod
    def from_file(cls, path: Path) -> SnapshotEntityStore:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"snapshot root must be a mapping: {path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotEntityStore:
        owners = [
            OwnerRef(id=_as_text(o.get("id")), display_name=_as_text(o.get("display_name")))
            for o in data.get("owners") or []
        ]
        clients = [
            ExistingClientRef(
                display_name=_as_text(c.get("display_name")),
                legal_name=_as_text(c.get("legal_name")),
                tax_id=_as_text(c.get("tax_id")),
                entity_id=_as_text(c.get("id")) or None,
            )
            for c in data.get("clients") or []
        ]
        invoices = [
            ExistingInvoiceRef(
                normalized_number=normalize(i.get("invoice_number")),
                owner_entity_id=_as_text(i.get("owner_id")),
                issue_date=_as_text(i.get("date")),
                amount=_as_decimal(i.get("amount")),
                entity_id=_as_text(i.get("id")) or None,
                raw_number=_as_text(i.get("invoice_number")),
                credit_note=bool(i.get("credit_note", False)),
            )
            for i in data.get("invoices") or []
        ]
        return cls(owners=owners, clients=clients, invoices=invoices)

    def list_existing_invoices(self) -> list[ExistingInvoiceRef]:
        return list(self.invoices)

    def list_existing_clients(self) -> list[ExistingClientRef]:
        return list(self.clients)

    def list_known_owners(self) -> list[OwnerRef]:
        return list(self.owners)

    def create_client(self, payload: dict[str, Any]) -> str:
        entity_id = f"client-{len(self.clients) + 1}"
        self.clients.append(
            ExistingClientRef(
                display_name=_as_text(payload.get("display_name")),
                legal_name=_as_text(payload.get("legal_name")),
                tax_id=_as_text(payload.get("tax_id")),
                entity_id=entity_id,
            )
        )
        self.created_clients.append(dict(payload, id=entity_id))
        return entity_id

    def create_invoice(self, payload: dict[str, Any]) -> str:
        entity_id = f"invoice-{len(self.invoices) + 1}"
        self.invoices.append(
            ExistingInvoiceRef(
                normalized_number=normalize(payload.get("invoice_number")),
                owner_entity_id=_as_text(payload.get("owner_id")),
                issue_date=_as_text(payload.get("date")),
                amount=_as_decimal(payload.get("amount")),
                entity_id=entity_id,
                raw_number=_as_text(payload.get("invoice_number")),
            )
        )
        self.created_invoices.append(dict(payload, id=entity_id))
        return entity_id
