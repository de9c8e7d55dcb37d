"""
Shared test fixtures.

No real network or device storage: the remote store is an in-memory
TabularClient and local storage is an in-memory KeyValueStorage (or a
FileKeyValueStorage under tmp_path).
"""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import pytest

from snapledger.config import LocalStoreSettings
from snapledger.ledger import LedgerStore, ModeSelector
from snapledger.models.ledger import UserIdentity
from snapledger.services.storage import (
    KeyValueStorage,
    LocalLedgerStore,
    NotFoundError,
    RemoteLedgerStore,
    StorageError,
    TableNotFoundError,
    TabularClient,
)


def ts(day: int, hour: int = 0) -> datetime:
    """Aware UTC timestamp in January 2024."""
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


class MemoryKeyValueStorage(KeyValueStorage):
    """Dict-backed key-value storage that can be told to fail writes."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.items: dict[str, str] = dict(initial or {})
        self.fail_writes = False
        self.writes: list[str] = []

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError(f"disk full writing {key}")
        self.writes.append(key)
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class MemoryTable(TabularClient):
    """
    In-memory remote table.

    Stores rows as given (JSON-ready dicts). `fail_on` names operations
    that raise StorageError; `missing` makes the table not exist.
    """

    def __init__(self, rows: Optional[list[dict[str, Any]]] = None):
        self.rows: list[dict[str, Any]] = [dict(r) for r in rows or []]
        self.fail_on: set[str] = set()
        self.missing = False
        self.calls: list[tuple[str, Any]] = []

    def _check(self, operation: str) -> None:
        if self.missing and operation == "select":
            raise TableNotFoundError("no such table")
        if operation in self.fail_on:
            raise StorageError(f"{operation} failed")

    @staticmethod
    def _matches(row: dict[str, Any], criteria: Optional[dict[str, Any]]) -> bool:
        return all(row.get(k) == v for k, v in (criteria or {}).items())

    async def select(
        self,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        self._check("select")
        self.calls.append(("select", filters))
        rows = [dict(r) for r in self.rows if self._matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or "", reverse=descending)
        return rows

    async def insert(self, row: dict[str, Any]) -> None:
        self._check("insert")
        self.calls.append(("insert", row))
        self.rows.append(dict(row))

    async def update(self, match: dict[str, Any], values: dict[str, Any]) -> None:
        self._check("update")
        self.calls.append(("update", match))
        for row in self.rows:
            if self._matches(row, match):
                row.update(values)
                return
        raise NotFoundError(f"no row matches {match}")

    async def delete(self, match: dict[str, Any]) -> None:
        self._check("delete")
        self.calls.append(("delete", match))
        self.rows = [r for r in self.rows if not self._matches(r, match)]

    async def upsert(
        self,
        rows: Sequence[dict[str, Any]],
        keys: Sequence[str] = ("id",),
    ) -> None:
        self._check("upsert")
        self.calls.append(("upsert", [r.get("id") for r in rows]))
        for row in rows:
            match = {k: row.get(k) for k in keys}
            for existing in self.rows:
                if self._matches(existing, match):
                    existing.clear()
                    existing.update(row)
                    break
            else:
                self.rows.append(dict(row))


@pytest.fixture
def local_settings(tmp_path) -> LocalStoreSettings:
    return LocalStoreSettings(data_dir=tmp_path / "ledger")


@pytest.fixture
def kv() -> MemoryKeyValueStorage:
    return MemoryKeyValueStorage()


@pytest.fixture
def local_store(kv, local_settings) -> LocalLedgerStore:
    return LocalLedgerStore(storage=kv, settings=local_settings)


@pytest.fixture
def tx_table() -> MemoryTable:
    return MemoryTable()


@pytest.fixture
def cat_table() -> MemoryTable:
    return MemoryTable()


@pytest.fixture
def alice() -> UserIdentity:
    return UserIdentity(user_id="user-alice", email="alice@example.com")


@pytest.fixture
def make_ledger(local_store, tx_table, cat_table):
    """Build a LedgerStore over the local store, able to sign in to the memory tables."""

    def factory() -> LedgerStore:
        def remote_factory(identity: UserIdentity) -> RemoteLedgerStore:
            return RemoteLedgerStore(identity.user_id, tx_table, cat_table)

        return LedgerStore(ModeSelector(local_store, remote_factory))

    return factory
