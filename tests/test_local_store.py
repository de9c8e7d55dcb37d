"""
Tests for the device-local store.
"""

import asyncio
import json
from datetime import date

import pytest

from conftest import MemoryKeyValueStorage, ts
from snapledger.config import LocalStoreSettings
from snapledger.models.ledger import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_IDS,
    Category,
    Transaction,
)
from snapledger.services.storage import (
    ChangeOperation,
    EntityKind,
    FileKeyValueStorage,
    LocalLedgerStore,
    RecordChange,
    StorageError,
    try_parse_records,
)

FOOD_ID = "a1e7e720-4e56-42f7-927c-9b788a8d1a1e"
TX_KEY = "snap_ledger_transactions"
CAT_KEY = "snap_ledger_categories"


def _blob(records):
    return json.dumps([r.to_dict() for r in records])


class TestFileKeyValueStorage:
    """Tests for the directory-backed key-value storage."""

    def test_missing_key_is_none(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path)
        assert storage.get_item("nope") is None

    def test_set_then_get(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path / "nested")
        storage.set_item("k", "[1, 2]")
        assert storage.get_item("k") == "[1, 2]"
        assert (tmp_path / "nested" / "k.json").exists()

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path)
        storage.set_item("k", "a")
        storage.set_item("k", "b")
        assert storage.get_item("k") == "b"
        assert [p.name for p in tmp_path.iterdir()] == ["k.json"]

    def test_remove_is_idempotent(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path)
        storage.set_item("k", "a")
        storage.remove_item("k")
        storage.remove_item("k")
        assert storage.get_item("k") is None

    def test_write_failure_is_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        storage = FileKeyValueStorage(blocker)
        with pytest.raises(StorageError):
            storage.set_item("k", "a")


class TestTryParseRecords:
    """Fail-soft parsing of stored blobs."""

    def test_invalid_json_is_none(self):
        assert try_parse_records("{not json", Category, "k") is None

    def test_non_array_is_none(self):
        assert try_parse_records('{"id": "x"}', Category, "k") is None

    def test_invalid_records_are_returned_raw(self):
        raw = json.dumps([{"id": "c1", "name": "Ok"}, {"id": "c2"}])
        records, invalid = try_parse_records(raw, Category, "k")
        assert [c.id for c in records] == ["c1"]
        assert invalid == [{"id": "c2"}]

    def test_long_free_text_is_valid(self):
        raw = json.dumps([{"id": "t1", "date": "2024-01-01", "note": "x" * 5000}])
        records, invalid = try_parse_records(raw, Transaction, "k")
        assert len(records[0].note) == 5000
        assert invalid == []


class TestLocalLoad:
    """Repairs made while loading."""

    def test_fresh_store_is_seeded_with_all_defaults(self, local_store, kv):
        snapshot = asyncio.run(local_store.load())
        assert snapshot.transactions == ()
        assert {c.id for c in snapshot.categories} == DEFAULT_CATEGORY_IDS
        assert len(snapshot.seeded_category_ids) == 9
        assert CAT_KEY in kv.items

    def test_missing_defaults_are_appended(self, local_settings):
        renamed = DEFAULT_CATEGORIES[0].model_copy(update={"name": "Meals", "updated_at": ts(1)})
        custom = Category(id="gym", name="Gym", updated_at=ts(1))
        kv = MemoryKeyValueStorage({CAT_KEY: _blob([renamed, custom])})
        store = LocalLedgerStore(storage=kv, settings=local_settings)

        snapshot = asyncio.run(store.load())

        assert snapshot.categories[:2] == (renamed, custom)
        assert len(snapshot.categories) == 10
        assert FOOD_ID not in snapshot.seeded_category_ids
        assert len(snapshot.seeded_category_ids) == 8
        saved = json.loads(kv.items[CAT_KEY])
        assert saved[0]["name"] == "Meals"
        assert len(saved) == 10

    def test_complete_defaults_are_not_rewritten(self, local_settings):
        kv = MemoryKeyValueStorage({CAT_KEY: _blob(DEFAULT_CATEGORIES)})
        store = LocalLedgerStore(storage=kv, settings=local_settings)
        snapshot = asyncio.run(store.load())
        assert snapshot.seeded_category_ids == ()
        assert kv.writes == []

    def test_corrupt_category_blob_gets_full_defaults_persisted(self, local_settings):
        kv = MemoryKeyValueStorage({CAT_KEY: "][ definitely not json"})
        store = LocalLedgerStore(storage=kv, settings=local_settings)

        snapshot = asyncio.run(store.load())

        assert {c.id for c in snapshot.categories} == DEFAULT_CATEGORY_IDS
        assert len(json.loads(kv.items[CAT_KEY])) == 9

    def test_corrupt_transaction_blob_is_empty(self, local_settings):
        kv = MemoryKeyValueStorage({TX_KEY: "garbage", CAT_KEY: _blob(DEFAULT_CATEGORIES)})
        store = LocalLedgerStore(storage=kv, settings=local_settings)
        snapshot = asyncio.run(store.load())
        assert snapshot.transactions == ()
        assert len(snapshot.categories) == 9

    def test_legacy_ids_migrated_and_saved_once(self, local_settings):
        legacy = [
            {"id": "t1", "amount": 5, "type": "expense", "categoryId": "food", "date": "2024-01-02"},
            {"id": "t2", "amount": 7, "type": "income", "categoryId": "salary", "date": "2024-01-03"},
        ]
        kv = MemoryKeyValueStorage({TX_KEY: json.dumps(legacy), CAT_KEY: _blob(DEFAULT_CATEGORIES)})
        store = LocalLedgerStore(storage=kv, settings=local_settings)

        first = asyncio.run(store.load())
        second = asyncio.run(store.load())

        assert first.migrated_transactions == 2
        assert first.transactions[0].category_id == FOOD_ID
        assert second.migrated_transactions == 0
        assert kv.writes == [TX_KEY]
        assert json.loads(kv.items[TX_KEY])[0]["category_id"] == FOOD_ID

    def test_fresh_seed_is_unstamped(self, local_store):
        """A freshly seeded default loses to any stamped copy from a backup."""
        snapshot = asyncio.run(local_store.load())
        assert all(c.updated_at is None for c in snapshot.categories)

    def test_long_note_survives_migration_and_mutation(self, local_settings):
        stored = [
            {"id": "long", "amount": 5, "categoryId": FOOD_ID, "date": "2024-01-02", "note": "n" * 1001},
            {"id": "legacy", "amount": 7, "categoryId": "food", "date": "2024-01-01"},
        ]
        kv = MemoryKeyValueStorage({TX_KEY: json.dumps(stored), CAT_KEY: _blob(DEFAULT_CATEGORIES)})
        store = LocalLedgerStore(storage=kv, settings=local_settings)

        snapshot = asyncio.run(store.load())
        added = Transaction(id="new", amount=1, category_id=FOOD_ID, date=date(2024, 1, 3))
        collection = (added,) + snapshot.transactions
        asyncio.run(store.save_change(
            RecordChange(EntityKind.TRANSACTION, ChangeOperation.ADD, "new", added, collection)
        ))

        assert [t.id for t in snapshot.transactions] == ["long", "legacy"]
        saved = json.loads(kv.items[TX_KEY])
        assert [r["id"] for r in saved] == ["new", "long", "legacy"]
        assert len(saved[1]["note"]) == 1001

    def test_unparseable_record_is_written_back(self, local_settings):
        broken = {"id": "broken", "amount": -3, "date": "2024-01-01"}
        stored = [broken, {"id": "legacy", "amount": 7, "categoryId": "food", "date": "2024-01-01"}]
        kv = MemoryKeyValueStorage({TX_KEY: json.dumps(stored), CAT_KEY: _blob(DEFAULT_CATEGORIES)})
        store = LocalLedgerStore(storage=kv, settings=local_settings)

        snapshot = asyncio.run(store.load())
        asyncio.run(store.save_change(
            RecordChange(EntityKind.TRANSACTION, ChangeOperation.DELETE, "legacy", None, ())
        ))

        assert [t.id for t in snapshot.transactions] == ["legacy"]
        assert json.loads(kv.items[TX_KEY]) == [broken]

    def test_failed_repair_write_still_loads(self, local_settings):
        kv = MemoryKeyValueStorage()
        kv.fail_writes = True
        store = LocalLedgerStore(storage=kv, settings=local_settings)
        snapshot = asyncio.run(store.load())
        assert len(snapshot.categories) == 9


class TestLocalWrites:
    """Writes rewrite the affected collection."""

    def test_save_change_writes_collection(self, local_store, kv):
        record = Transaction(id="t1", amount=3, category_id=FOOD_ID, date=date(2024, 1, 1))
        change = RecordChange(
            EntityKind.TRANSACTION, ChangeOperation.ADD, "t1", record, (record,)
        )
        asyncio.run(local_store.save_change(change))
        assert json.loads(kv.items[TX_KEY])[0]["id"] == "t1"

    def test_save_change_failure_raises(self, local_store, kv):
        kv.fail_writes = True
        change = RecordChange(EntityKind.CATEGORY, ChangeOperation.DELETE, "c1")
        with pytest.raises(StorageError):
            asyncio.run(local_store.save_change(change))

    def test_save_merged_without_changes_writes_nothing(self, local_store, kv):
        asyncio.run(local_store.save_merged(EntityKind.CATEGORY, [], DEFAULT_CATEGORIES))
        assert kv.writes == []

    def test_save_and_reload_through_files(self, tmp_path):
        settings = LocalStoreSettings(data_dir=tmp_path)
        store = LocalLedgerStore(settings=settings)
        record = Transaction(id="t1", amount=3, category_id=FOOD_ID, date=date(2024, 1, 1), updated_at=ts(1))
        asyncio.run(store.save([record], DEFAULT_CATEGORIES))

        snapshot = asyncio.run(LocalLedgerStore(settings=settings).load())

        assert snapshot.transactions == (record,)
        assert snapshot.seeded_category_ids == ()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
