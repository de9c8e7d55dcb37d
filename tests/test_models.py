"""
Tests for SnapLedger models

Test strategy:
1. Unit tests for individual components (models, mappings, builders)
2. Integration tests for flows (with in-memory stores)
3. No real API calls in tests (use fakes and mocks)
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from snapledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from snapledger.models.extraction import (
    NeedsCategorization,
    TransactionCandidate,
)
from snapledger.models.ledger import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_IDS,
    EPOCH,
    LEGACY_CATEGORY_ID_MAP,
    BackupBundle,
    Category,
    CategoryInput,
    Transaction,
    TransactionInput,
    TransactionStatus,
    TransactionType,
    default_categories,
    migrate_category_ids,
    missing_default_categories,
    resolve_category_id,
)
from snapledger.models.rows import (
    CATEGORY_COLUMNS,
    TRANSACTION_COLUMNS,
    CategoryRow,
    TransactionRow,
)

FOOD_ID = "a1e7e720-4e56-42f7-927c-9b788a8d1a1e"


class TestTransactionModel:
    """Tests for the stored Transaction record."""

    def test_transaction_creation(self):
        """Test Transaction model creation."""
        tx = Transaction(
            id="t1",
            amount=Decimal("12.50"),
            kind=TransactionType.EXPENSE,
            category_id=FOOD_ID,
            date=date(2024, 1, 5),
            note="Lunch",
        )
        assert tx.amount == Decimal("12.50")
        assert tx.status == TransactionStatus.COMPLETED
        assert tx.is_complete

    def test_transaction_reads_legacy_field_names(self):
        """camelCase keys and `type` for the kind are accepted."""
        tx = Transaction.model_validate({
            "id": "t1",
            "amount": 5,
            "type": "income",
            "categoryId": "salary",
            "date": "2024-01-05",
            "updatedAt": "2024-01-05T10:00:00Z",
        })
        assert tx.kind == TransactionType.INCOME
        assert tx.category_id == "salary"
        assert tx.updated_at == datetime(2024, 1, 5, 10, tzinfo=timezone.utc)

    def test_transaction_writes_snake_case(self):
        """Serialization always uses the canonical names."""
        tx = Transaction(id="t1", amount=1, category_id="c", date=date(2024, 1, 5))
        data = tx.to_dict()
        assert "category_id" in data
        assert "categoryId" not in data
        assert data["kind"] == "expense"
        assert data["date"] == "2024-01-05"

    def test_transaction_date_drops_time(self):
        """Older clients stored full ISO timestamps as the date."""
        tx = Transaction(id="t1", date="2024-03-09T18:22:00.000Z")
        assert tx.date == date(2024, 3, 9)

    def test_missing_status_reads_as_completed(self):
        """Records written before drafts existed are completed."""
        tx = Transaction.model_validate({"id": "t1", "amount": 3, "date": "2024-01-01"})
        assert tx.status == TransactionStatus.COMPLETED

    def test_draft_may_lack_amount_and_category(self):
        """Stored drafts are lenient."""
        tx = Transaction(id="t1", date=date(2024, 1, 1), status="draft")
        assert tx.is_draft
        assert not tx.is_complete

    def test_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction(id="t1", amount=Decimal("-1"), date=date(2024, 1, 1))

    def test_transaction_is_frozen(self):
        """Records cannot be changed in place."""
        tx = Transaction(id="t1", amount=1, date=date(2024, 1, 1))
        with pytest.raises(ValueError):
            tx.amount = Decimal("2")

    def test_unstamped_record_compares_as_epoch(self):
        """A missing updated_at is the epoch for merging."""
        tx = Transaction(id="t1", date=date(2024, 1, 1))
        assert tx.modified_at == EPOCH

    def test_naive_timestamp_assumed_utc(self):
        tx = Transaction(id="t1", date=date(2024, 1, 1), updated_at=datetime(2024, 1, 1, 9))
        assert tx.updated_at.tzinfo == timezone.utc

    def test_stored_records_have_no_length_caps(self):
        """Only user input is length-checked; stored data always loads."""
        tx = Transaction(id="t1", date=date(2024, 1, 1), note="n" * 1001)
        category = Category(id="c1", name="x" * 150, icon="★" * 20)
        assert len(tx.note) == 1001
        assert len(category.name) == 150
        with pytest.raises(ValueError):
            TransactionInput(date=date(2024, 1, 1), note="n" * 1001, status=TransactionStatus.DRAFT)
        with pytest.raises(ValueError):
            CategoryInput(name="x" * 150)


class TestInputs:
    """Tests for strict user input."""

    def test_completed_input_needs_amount(self):
        with pytest.raises(ValueError, match="needs an amount"):
            TransactionInput(category_id=FOOD_ID, date=date(2024, 1, 1))

    def test_completed_input_needs_category(self):
        with pytest.raises(ValueError, match="needs a category"):
            TransactionInput(amount=Decimal("5"), date=date(2024, 1, 1))

    def test_draft_input_needs_neither(self):
        entry = TransactionInput(date=date(2024, 1, 1), status=TransactionStatus.DRAFT)
        tx = entry.build("t1", datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert tx.id == "t1"
        assert tx.is_draft

    def test_category_input_build_stamps(self):
        stamp = datetime(2024, 2, 1, tzinfo=timezone.utc)
        category = CategoryInput(name="  Gym  ", icon="🏋️").build("c1", stamp)
        assert category.name == "Gym"
        assert category.updated_at == stamp


class TestDefaultCategories:
    """Tests for the default set and the identifier migration table."""

    def test_nine_defaults_with_fixed_ids(self):
        assert len(DEFAULT_CATEGORIES) == 9
        assert DEFAULT_CATEGORIES[0].id == FOOD_ID
        assert DEFAULT_CATEGORIES[0].name == "Food"
        assert {c.kind for c in DEFAULT_CATEGORIES[6:]} == {TransactionType.INCOME}

    def test_every_legacy_id_maps_to_a_default(self):
        assert set(LEGACY_CATEGORY_ID_MAP.values()) == DEFAULT_CATEGORY_IDS

    def test_resolve_maps_legacy_ids(self):
        assert resolve_category_id("food") == FOOD_ID
        assert resolve_category_id("entertainment") == "d4e7e720-4e56-42f7-927c-9b788a8d1d4e"

    def test_resolve_passes_everything_else_through(self):
        assert resolve_category_id("gym") == "gym"
        assert resolve_category_id(FOOD_ID) == FOOD_ID
        assert resolve_category_id(None) is None

    def test_default_categories_are_stamped(self):
        stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert all(c.updated_at == stamp for c in default_categories(stamp))

    def test_default_categories_unstamped_without_stamp(self):
        assert default_categories() == list(DEFAULT_CATEGORIES)
        assert all(c.updated_at is None for c in default_categories())

    def test_appended_missing_defaults_get_fresh_stamp(self):
        missing = missing_default_categories([])
        assert all(c.updated_at is not None for c in missing)

    def test_missing_defaults_by_id_only(self):
        """A renamed default is still present."""
        renamed = DEFAULT_CATEGORIES[0].model_copy(update={"name": "Meals"})
        missing = missing_default_categories([renamed])
        assert len(missing) == 8
        assert FOOD_ID not in {c.id for c in missing}

    def test_migrate_category_ids_counts_changes(self):
        transactions = [
            Transaction(id="t1", category_id="food", date=date(2024, 1, 1)),
            Transaction(id="t2", category_id=FOOD_ID, date=date(2024, 1, 1)),
            Transaction(id="t3", date=date(2024, 1, 1), status="draft"),
        ]
        migrated, changed = migrate_category_ids(transactions)
        assert changed == 1
        assert [t.category_id for t in migrated] == [FOOD_ID, FOOD_ID, None]

    def test_migration_keeps_timestamps(self):
        stamp = datetime(2023, 5, 1, tzinfo=timezone.utc)
        tx = Transaction(id="t1", category_id="bills", date=date(2024, 1, 1), updated_at=stamp)
        migrated, _ = migrate_category_ids([tx])
        assert migrated[0].updated_at == stamp


class TestRemoteRows:
    """Tests for the remote column translation."""

    def test_transaction_row_columns(self):
        assert TRANSACTION_COLUMNS == [
            "id", "user_id", "amount", "type", "category",
            "date", "description", "status", "updated_at",
        ]
        assert CATEGORY_COLUMNS == ["id", "user_id", "name", "icon", "type", "updated_at"]

    def test_transaction_row_from_domain(self):
        tx = Transaction(
            id="t1",
            amount=Decimal("9.99"),
            kind="income",
            category_id="c1",
            date=date(2024, 1, 5),
            note="Refund",
        )
        row = TransactionRow.from_domain(tx, "u1").to_table()
        assert row["user_id"] == "u1"
        assert row["category"] == "c1"
        assert row["description"] == "Refund"
        assert row["type"] == "income"
        assert "category_id" not in row

    def test_transaction_row_to_domain_migrates_category(self):
        row = TransactionRow.model_validate({
            "id": "t1", "user_id": "u1", "amount": "4", "type": "expense",
            "category": "food", "date": "2024-01-05", "description": "",
            "status": "", "updated_at": "",
        })
        tx = row.to_domain()
        assert tx.category_id == FOOD_ID
        assert tx.note is None
        assert tx.status == TransactionStatus.COMPLETED
        assert tx.updated_at is None

    def test_category_row_roundtrip_fields(self):
        category = Category(id="c1", name="Gym", icon="🏋️", kind="expense")
        row = CategoryRow.from_domain(category, "u1")
        assert row.type == TransactionType.EXPENSE
        assert row.to_domain() == category

    def test_category_row_blank_icon_uses_placeholder(self):
        row = CategoryRow.model_validate({"id": "c1", "user_id": "u1", "name": "X", "icon": "", "type": ""})
        assert row.icon == "🏷️"
        assert row.type == TransactionType.EXPENSE


class TestExtractionModels:
    """Tests for voice entry candidates."""

    def test_confident_complete_candidate_is_completed(self):
        candidate = TransactionCandidate(
            amount=Decimal("120"), category_id=FOOD_ID, date="2024-01-05", confidence=0.95,
        )
        entry = candidate.to_input()
        assert entry.status == TransactionStatus.COMPLETED

    def test_low_confidence_candidate_is_draft(self):
        candidate = TransactionCandidate(
            amount=Decimal("120"), category_id=FOOD_ID, date="2024-01-05", confidence=0.6,
        )
        assert candidate.to_input().status == TransactionStatus.DRAFT

    def test_candidate_without_category_is_draft(self):
        candidate = TransactionCandidate(amount=Decimal("5"), date="2024-01-05", confidence=1.0)
        assert not candidate.is_auto_completable()
        assert candidate.to_input().status == TransactionStatus.DRAFT

    def test_candidate_threshold_is_inclusive(self):
        candidate = TransactionCandidate(
            amount=Decimal("5"), category_id=FOOD_ID, date="2024-01-05", confidence=0.9,
        )
        assert candidate.is_auto_completable(0.9)

    def test_candidate_date_defaults_to_today(self):
        candidate = TransactionCandidate(amount=Decimal("5"), confidence=0.5)
        assert isinstance(candidate.date, date)

    def test_needs_categorization_keeps_original_text(self):
        partial = NeedsCategorization(original_text="spent forty on stuff", amount=Decimal("40"))
        entry = partial.to_input()
        assert entry.status == TransactionStatus.DRAFT
        assert entry.note == "spent forty on stuff"


class TestBackupBundle:
    """Tests for the backup bundle shape."""

    def test_bundle_reads_camel_case(self):
        bundle = BackupBundle.model_validate({
            "version": 1,
            "exportedAt": "2024-01-01T00:00:00Z",
            "transactions": [{"id": "t1", "amount": 1, "categoryId": "food", "date": "2024-01-01"}],
            "categories": [{"id": "c1", "name": "X", "icon": "x", "type": "income"}],
        })
        assert bundle.exported_at is not None
        assert bundle.categories[0].kind == TransactionType.INCOME

    def test_bundle_to_dict_is_json_ready(self):
        bundle = BackupBundle(transactions=[Transaction(id="t1", amount=1, category_id="c", date=date(2024, 1, 1))])
        text = json.dumps(bundle.to_dict())
        assert '"version": 1' in text


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Transaction created",
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            entity_id="c1",
            description="Category deleted",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "category_deleted"
        assert log_dict["entity_id"] == "c1"
        assert isinstance(log_dict["event_id"], str)

    def test_audit_event_to_table_row(self):
        """Table rows carry details as JSON properties."""
        event = AuditEventBuilder.mutation_rolled_back("transaction", "update", "t1", "boom")
        row = event.to_table_row()
        assert row["event_name"] == "mutation_rolled_back"
        properties = json.loads(row["properties"])
        assert properties["entity_id"] == "t1"
        assert properties["error_message"] == "boom"

    def test_rollback_event_is_error(self):
        event = AuditEventBuilder.mutation_rolled_back("category", "delete", "c1", "nope")
        assert event.severity == AuditSeverity.ERROR
        assert not event.is_user_action

    def test_data_imported_with_failures_is_warning(self):
        event = AuditEventBuilder.data_imported(2, 1, ["transaction"])
        assert event.severity == AuditSeverity.WARNING
        assert event.details["failed_kinds"] == ["transaction"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
