from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..models.records import ExistingClientRef, ExistingInvoiceRef, OwnerRef

if TYPE_CHECKING:
    from ..db.store import EntityStore

"""Existing-entity index: a read-only snapshot for one validation/matching pass.

The index is loaded once at the start of a pass and never refreshed while a
batch runs. Two imports run back to back must each load their own index.
"""

__all__ = [
    "OwnerDirectory",
    "ExistingEntityIndex",
]

logger = logging.getLogger(__name__)


def _owner_key(name: object) -> str:
    return str(name).strip().lower() if name is not None else ""


@dataclass(frozen=True)
class OwnerDirectory:
    """Lower-cased owner display name -> owner, plus owner id -> owner."""
    by_name: dict[str, OwnerRef] = field(default_factory=dict)
    by_id: dict[str, OwnerRef] = field(default_factory=dict)

    @classmethod
    def from_owners(cls, owners: Iterable[OwnerRef]) -> OwnerDirectory:
        by_name: dict[str, OwnerRef] = {}
        by_id: dict[str, OwnerRef] = {}
        for owner in owners:
            by_id.setdefault(str(owner.id), owner)
            key = _owner_key(owner.display_name)
            if not key:
                continue
            if key in by_name:
                logger.warning(
                    "owner name '%s' is shared by ids %s and %s; keeping the first",
                    owner.display_name,
                    by_name[key].id,
                    owner.id,
                )
                continue
            by_name[key] = owner
        return cls(by_name=by_name, by_id=by_id)

    def resolve(self, name: object) -> OwnerRef | None:
        key = _owner_key(name)
        if not key:
            return None
        return self.by_name.get(key)

    def resolve_reference(self, value: object) -> OwnerRef | None:
        """Resolve an upload cell that names the owner or carries its id.

        The display name wins when a name and an id collide.
        """
        owner = self.resolve(value)
        if owner is None and value is not None:
            owner = self.by_id.get(str(value).strip())
        return owner

    def __contains__(self, name: object) -> bool:
        return self.resolve(name) is not None

    def __len__(self) -> int:
        return len(self.by_name)


@dataclass(frozen=True)
class ExistingEntityIndex:
    invoices: tuple[ExistingInvoiceRef, ...] = ()
    clients: tuple[ExistingClientRef, ...] = ()
    owners: OwnerDirectory = field(default_factory=OwnerDirectory)

    @classmethod
    def load(cls, store: EntityStore) -> ExistingEntityIndex:
        """Snapshot the store; each list operation is called exactly once."""
        invoices = tuple(store.list_existing_invoices())
        clients = tuple(store.list_existing_clients())
        owners = OwnerDirectory.from_owners(store.list_known_owners())
        logger.info(
            "loaded snapshot invoices=%d clients=%d owners=%d",
            len(invoices),
            len(clients),
            len(owners),
        )
        return cls(invoices=invoices, clients=clients, owners=owners)

    def client_by_tax_id(self, tax_id: str) -> ExistingClientRef | None:
        wanted = tax_id.strip()
        if not wanted:
            return None
        for client in self.clients:
            if client.tax_id and client.tax_id.strip() == wanted:
                return client
        return None

    def display_names(self) -> list[str]:
        return [c.display_name for c in self.clients]
