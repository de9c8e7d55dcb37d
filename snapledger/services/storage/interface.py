"""
Abstract Storage Interface

DESIGN DECISION: The ledger talks to storage through one abstract
interface, whichever store is active:
1. The device-local key-value store when nobody is signed in
2. The remote tabular store, scoped to the signed-in user
3. In-memory fakes for testing

Stores receive whole-record changes. A local store rewrites the affected
collection; a remote store turns the change into a single insert, update,
delete or upsert. The interface is intentionally small - we're not
building an ORM, just the operations the ledger needs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Union

from snapledger.models.ledger import Category, Transaction

LedgerRecordUnion = Union[Transaction, Category]


class EntityKind(str, Enum):
    """The two synchronised collections."""
    TRANSACTION = "transaction"
    CATEGORY = "category"


class ChangeOperation(str, Enum):
    """What a single-record change does."""
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Both collections as loaded from a store.

    Also reports the repairs the store made while loading.
    """
    transactions: tuple[Transaction, ...] = ()
    categories: tuple[Category, ...] = ()
    seeded_category_ids: tuple[str, ...] = ()
    migrated_transactions: int = 0


@dataclass(frozen=True)
class RecordChange:
    """
    One optimistic mutation, handed to the active store.

    `collection` is the full collection of `kind` after the change, so a
    store that can only overwrite whole collections has what it needs.
    """
    kind: EntityKind
    operation: ChangeOperation
    record_id: str
    record: Optional[LedgerRecordUnion] = None
    collection: tuple[LedgerRecordUnion, ...] = field(default_factory=tuple)


class LedgerStoreInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation must implement these methods. Every write
    either fully succeeds or raises StorageError.
    """

    @abstractmethod
    async def load(self) -> LedgerSnapshot:
        """
        Load both collections, repairing them on the way if needed.

        Repairs are legacy category id migration and backfilling missing
        default categories.
        """
        pass

    @abstractmethod
    async def save_change(self, change: RecordChange) -> None:
        """
        Persist a single add/update/delete.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def save_merged(
        self,
        kind: EntityKind,
        changed: Sequence[LedgerRecordUnion],
        collection: Sequence[LedgerRecordUnion],
    ) -> None:
        """
        Persist records that a reconciliation added or overwrote.

        Args:
            kind: Which collection the records belong to
            changed: Only the new or overwritten records
            collection: The full merged collection

        Raises:
            StorageError: If the write fails
        """
        pass


class TabularClient(ABC):
    """
    Abstract interface for one table of a remote tabular store.

    Rows are plain column -> value dicts. Filters and matches are
    equality-only, which is all the ledger needs.
    """

    @abstractmethod
    async def select(
        self,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Return the rows matching every filter.

        Raises:
            TableNotFoundError: If the table does not exist
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def insert(self, row: dict[str, Any]) -> None:
        """Append one row."""
        pass

    @abstractmethod
    async def update(self, match: dict[str, Any], values: dict[str, Any]) -> None:
        """
        Overwrite the columns in `values` on the row matching `match`.

        Raises:
            NotFoundError: If no row matches
        """
        pass

    @abstractmethod
    async def delete(self, match: dict[str, Any]) -> None:
        """Delete the rows matching `match`. Deleting nothing is not an error."""
        pass

    @abstractmethod
    async def upsert(
        self,
        rows: Sequence[dict[str, Any]],
        keys: Sequence[str] = ("id",),
    ) -> None:
        """Insert each row, or overwrite the existing row sharing all its `keys` values."""
        pass


class KeyValueStorage(ABC):
    """
    Abstract interface for device-local persistent key-value storage.

    One string value per key; writing a key replaces its value atomically.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key was never written."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Store `value` under `key`.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Forget `key`. Removing a missing key is not an error."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class TableNotFoundError(StorageError):
    """The remote table does not exist (yet)."""
    pass


class StoreUnavailableError(StorageError):
    """Could not connect to or authenticate with the storage backend."""
    pass


class PreconditionError(Exception):
    """
    An operation was attempted without what it requires.

    Missing credentials, or a remote operation with nobody signed in.
    Raised before any I/O happens.
    """
    pass
