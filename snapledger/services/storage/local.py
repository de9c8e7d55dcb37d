"""
Device-Local Storage Implementation

Used whenever nobody is signed in. Each collection is one JSON array
stored under its own key, so the two can never be half-written together
and a corrupt one never takes the other down with it.

FAIL-SOFT LOADING: a blob that is not valid JSON is logged and read as an
empty collection. A corrupt local store must not crash the application.
Single records that fail validation are kept aside as raw JSON and written
back untouched on every rewrite of their collection, so they are never lost.
Writes, on the other hand, fail loudly (StorageError) so the ledger can
roll back its optimistic change.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Sequence, Type, TypeVar

import structlog
from pydantic import ValidationError

from snapledger.config import LocalStoreSettings, get_settings
from snapledger.models.ledger import (
    Category,
    LedgerRecord,
    Transaction,
    default_categories,
    migrate_category_ids,
    missing_default_categories,
)
from snapledger.services.storage.interface import (
    EntityKind,
    KeyValueStorage,
    LedgerSnapshot,
    LedgerStoreInterface,
    RecordChange,
    StorageError,
)

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=LedgerRecord)


class FileKeyValueStorage(KeyValueStorage):
    """
    Key-value storage backed by a directory, one `<key>.json` file per key.

    Writes go to a temporary file in the same directory and are renamed
    over the target, so a reader sees either the old value or the new one.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        if data_dir is None:
            data_dir = get_settings().local_store.data_dir
        self._dir = Path(data_dir).expanduser()

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            # Unreadable is handled like unparseable: the loader treats it as empty
            logger.warning("local_storage_read_failed", key=key, error=str(e))
            return ""

    def set_item(self, key: str, value: str) -> None:
        tmp_name = None
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._dir,
                prefix=f".{key}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(value)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path(key))
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e


def try_parse_records(
    raw: str,
    model: Type[RecordT],
    key: str,
) -> Optional[tuple[list[RecordT], list[Any]]]:
    """
    Parse a stored JSON array into records.

    Returns None when the blob is not a JSON array at all. Otherwise
    returns the valid records and the raw items that failed validation.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error("local_blob_parse_failed", key=key, error=str(e))
        return None

    if not isinstance(data, list):
        logger.error("local_blob_parse_failed", key=key, error="not a JSON array")
        return None

    records = []
    invalid = []
    for item in data:
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            invalid.append(item)
            logger.warning(
                "local_record_kept_unparsed",
                key=key,
                id=item.get("id") if isinstance(item, dict) else None,
                error=str(e),
            )
    return records, invalid


def _dump_records(records: Sequence[LedgerRecord], unparsed: Sequence[Any] = ()) -> str:
    return json.dumps([r.to_dict() for r in records] + list(unparsed), ensure_ascii=False)


class LocalLedgerStore(LedgerStoreInterface):
    """
    Ledger storage on the device.

    Every write rewrites the whole affected collection under its key.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        settings: Optional[LocalStoreSettings] = None,
    ):
        self._settings = settings or get_settings().local_store
        self._storage = storage or FileKeyValueStorage(self._settings.data_dir)
        # Raw items from the last load that did not validate, per collection
        self._unparsed: dict[EntityKind, list[Any]] = {
            EntityKind.TRANSACTION: [],
            EntityKind.CATEGORY: [],
        }

    def _key(self, kind: EntityKind) -> str:
        if kind == EntityKind.TRANSACTION:
            return self._settings.transactions_key
        return self._settings.categories_key

    def _read(self, kind: EntityKind, model: Type[RecordT]) -> Optional[list[RecordT]]:
        """None when the key was never written; [] when it is corrupt."""
        key = self._key(kind)
        self._unparsed[kind] = []
        raw = self._storage.get_item(key)
        if raw is None:
            return None
        parsed = try_parse_records(raw, model, key)
        if parsed is None:
            return []
        records, self._unparsed[kind] = parsed
        return records

    def _write(self, kind: EntityKind, records: Sequence[LedgerRecord]) -> None:
        self._storage.set_item(self._key(kind), _dump_records(records, self._unparsed[kind]))

    def _repair_write(self, kind: EntityKind, records: Sequence[LedgerRecord]) -> None:
        # A failed repair is retried on the next load; the loaded data is still right
        try:
            self._write(kind, records)
        except StorageError as e:
            logger.warning("local_repair_write_failed", kind=kind.value, error=str(e))

    async def load(self) -> LedgerSnapshot:
        """
        Load both collections from the device.

        Repairs on the way:
        - legacy category ids on transactions are migrated and saved once
        - a missing category collection is seeded with the full default set
        - missing default categories are appended to an existing collection
        """
        transactions = self._read(EntityKind.TRANSACTION, Transaction) or []
        transactions, migrated = migrate_category_ids(transactions)
        if migrated:
            logger.info("legacy_category_ids_migrated", count=migrated)
            self._repair_write(EntityKind.TRANSACTION, transactions)

        categories = self._read(EntityKind.CATEGORY, Category)
        if not categories:
            seeded = default_categories()
            categories = list(seeded)
        else:
            seeded = missing_default_categories(categories)
            categories = categories + seeded
        if seeded:
            logger.info("default_categories_seeded", count=len(seeded))
            self._repair_write(EntityKind.CATEGORY, categories)

        return LedgerSnapshot(
            transactions=tuple(transactions),
            categories=tuple(categories),
            seeded_category_ids=tuple(c.id for c in seeded),
            migrated_transactions=migrated,
        )

    async def save(
        self,
        transactions: Sequence[Transaction],
        categories: Sequence[Category],
    ) -> None:
        """Overwrite both collections."""
        self._write(EntityKind.TRANSACTION, transactions)
        self._write(EntityKind.CATEGORY, categories)

    async def save_change(self, change: RecordChange) -> None:
        self._write(change.kind, change.collection)

    async def save_merged(
        self,
        kind: EntityKind,
        changed: Sequence[LedgerRecord],
        collection: Sequence[LedgerRecord],
    ) -> None:
        if not changed:
            return
        self._write(kind, collection)
