"""
Mutation Coordinator

DESIGN DECISION: The ledger keeps both collections in memory and applies
every change OPTIMISTICALLY, then persists it through the active store:

    snapshot -> apply -> persist -> commit
                            |
                            +-- failure -> restore snapshot -> MutationError

Collections are tuples of frozen records, so a snapshot is just the tuple
we held before the change and a rollback is a plain assignment. Nothing
can mutate a snapshot behind our back.

CONCURRENCY: one asyncio.Lock per collection. Two transaction edits never
interleave; a transaction edit and a category edit may. Loading, switching
identity and importing take both locks (categories first, then
transactions) for their whole duration.

The in-memory collections are a cache of the active store. They only
disagree with it while a mutation is in flight.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from snapledger.audit import AuditLogger
from snapledger.ledger.backup import parse_bundle, read_backup, write_backup
from snapledger.ledger.mode import ModeSelector
from snapledger.ledger.reconciliation import reconcile
from snapledger.models.audit import AuditEventBuilder
from snapledger.models.ledger import (
    BackupBundle,
    Category,
    CategoryInput,
    Transaction,
    TransactionInput,
    TransactionStatus,
    UserIdentity,
    new_record_id,
    utc_now,
)
from snapledger.services.storage.interface import (
    ChangeOperation,
    EntityKind,
    LedgerRecordUnion,
    LedgerSnapshot,
    PreconditionError,
    RecordChange,
    StorageError,
)

logger = structlog.get_logger(__name__)

Collection = tuple[LedgerRecordUnion, ...]


# =============================================================================
# MUTATION STATE
# =============================================================================

class MutationState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class Mutation:
    """One optimistic change and the collection it can be undone to."""
    kind: EntityKind
    operation: ChangeOperation
    record_id: str
    snapshot: Collection
    record: Optional[LedgerRecordUnion] = None
    state: MutationState = MutationState.PENDING
    error: Optional[BaseException] = None

    def commit(self) -> None:
        if self.state != MutationState.PENDING:
            raise RuntimeError(f"Mutation already {self.state.value}")
        self.state = MutationState.COMMITTED

    def roll_back(self, error: BaseException) -> None:
        if self.state != MutationState.PENDING:
            raise RuntimeError(f"Mutation already {self.state.value}")
        self.state = MutationState.ROLLED_BACK
        self.error = error


class MutationError(Exception):
    """A change could not be persisted and was reverted."""

    def __init__(
        self,
        kind: EntityKind,
        operation: ChangeOperation,
        record_id: str,
        cause: Exception,
    ):
        self.kind = kind
        self.operation = operation
        self.record_id = record_id
        self.cause = cause
        super().__init__(
            f"Could not {operation.value} {kind.value} {record_id}: {cause}"
        )


class UnknownRecordError(LookupError):
    """No record with that id in the ledger."""

    def __init__(self, kind: EntityKind, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"No {kind.value} with id {record_id}")


@dataclass(frozen=True)
class ImportReport:
    """What a backup import merged, and what it failed to save."""
    transactions_changed: int = 0
    categories_changed: int = 0
    categories_synthesized: int = 0
    failures: dict[EntityKind, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_kinds(self) -> list[str]:
        return [kind.value for kind in self.failures]


# Fields a caller may change on an existing record
_TRANSACTION_FIELDS = {"amount", "kind", "category_id", "date", "note", "status"}
_CATEGORY_FIELDS = {"name", "icon", "kind"}


def _check_fields(changes: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot change field(s): {', '.join(sorted(unknown))}")


# =============================================================================
# LEDGER
# =============================================================================

class LedgerStore:
    """
    The owned in-memory ledger.

    Usage:
        ledger = LedgerStore(ModeSelector(LocalLedgerStore()))
        await ledger.load()
        tx = await ledger.add_transaction({"amount": "12.50", ...})
    """

    def __init__(
        self,
        mode: ModeSelector,
        audit: Optional[AuditLogger] = None,
        backup_version: int = 1,
    ):
        self._mode = mode
        self._audit = audit or AuditLogger()
        self._backup_version = backup_version
        self._transactions: tuple[Transaction, ...] = ()
        self._categories: tuple[Category, ...] = ()
        self._locks = {
            EntityKind.CATEGORY: asyncio.Lock(),
            EntityKind.TRANSACTION: asyncio.Lock(),
        }

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        return self._transactions

    @property
    def categories(self) -> tuple[Category, ...]:
        return self._categories

    @property
    def identity(self) -> Optional[UserIdentity]:
        return self._mode.identity

    @property
    def is_remote(self) -> bool:
        return self._mode.is_remote

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    def get_category(self, category_id: Optional[str]) -> Optional[Category]:
        """The category with that id; None renders as uncategorized."""
        if not category_id:
            return None
        return next((c for c in self._categories if c.id == category_id), None)

    def drafts(self) -> list[Transaction]:
        return [t for t in self._transactions if t.is_draft]

    def _collection(self, kind: EntityKind) -> Collection:
        if kind == EntityKind.TRANSACTION:
            return self._transactions
        return self._categories

    def _set_collection(self, kind: EntityKind, records: Collection) -> None:
        if kind == EntityKind.TRANSACTION:
            self._transactions = records
        else:
            self._categories = records

    def _require(self, kind: EntityKind, record_id: str) -> LedgerRecordUnion:
        for record in self._collection(kind):
            if record.id == record_id:
                return record
        raise UnknownRecordError(kind, record_id)

    @asynccontextmanager
    async def _all_locks(self):
        async with self._locks[EntityKind.CATEGORY]:
            async with self._locks[EntityKind.TRANSACTION]:
                yield

    # -------------------------------------------------------------------------
    # Loading & identity
    # -------------------------------------------------------------------------

    async def _load_unlocked(self) -> LedgerSnapshot:
        store = self._mode.active_store
        snapshot = await store.load()
        self._transactions = snapshot.transactions
        self._categories = snapshot.categories
        logger.info(
            "ledger_loaded",
            remote=self._mode.is_remote,
            transactions=len(snapshot.transactions),
            categories=len(snapshot.categories),
        )

        if snapshot.seeded_category_ids:
            await self._audit.log(
                AuditEventBuilder.categories_seeded(list(snapshot.seeded_category_ids))
            )
        if snapshot.migrated_transactions:
            await self._audit.log(
                AuditEventBuilder.category_ids_migrated(snapshot.migrated_transactions)
            )
        return snapshot

    async def load(self) -> LedgerSnapshot:
        """(Re)load both collections from the active store."""
        async with self._all_locks():
            return await self._load_unlocked()

    async def switch_identity(self, identity: Optional[UserIdentity]) -> LedgerSnapshot:
        """
        Sign in as `identity` (or out, with None) and reload everything.

        The in-memory cache is discarded; nothing is carried across stores.

        Raises:
            PreconditionError: Signing in without a configured remote store.
                Nothing changes.
        """
        async with self._all_locks():
            self._mode.set_identity(identity)
            self._audit.set_user(identity.user_id if identity else None)
            self._transactions = ()
            self._categories = ()
            return await self._load_unlocked()

    # -------------------------------------------------------------------------
    # Optimistic mutation
    # -------------------------------------------------------------------------

    async def _mutate(
        self,
        kind: EntityKind,
        operation: ChangeOperation,
        compute: Callable[[Collection], tuple[Collection, str, Optional[LedgerRecordUnion]]],
    ) -> Mutation:
        """
        Run one optimistic change under the collection's lock.

        `compute` receives the current collection and returns the new
        collection, the affected id and the new record (None for deletes).
        It may raise to reject the change before anything happens.
        """
        async with self._locks[kind]:
            before = self._collection(kind)
            after, record_id, record = compute(before)

            mutation = Mutation(kind, operation, record_id, snapshot=before, record=record)
            self._set_collection(kind, after)
            change = RecordChange(kind, operation, record_id, record, after)

            try:
                await self._mode.active_store.save_change(change)
            except asyncio.CancelledError as e:
                self._set_collection(kind, mutation.snapshot)
                mutation.roll_back(e)
                raise
            except (StorageError, PreconditionError) as e:
                self._set_collection(kind, mutation.snapshot)
                mutation.roll_back(e)
                logger.error(
                    "mutation_rolled_back",
                    kind=kind.value,
                    operation=operation.value,
                    record_id=record_id,
                    error=str(e),
                )
                await self._audit.log(AuditEventBuilder.mutation_rolled_back(
                    kind.value, operation.value, record_id, str(e)
                ))
                if isinstance(e, PreconditionError):
                    raise
                raise MutationError(kind, operation, record_id, e) from e

            mutation.commit()
            return mutation

    # --- transactions ---

    async def add_transaction(
        self,
        data: Union[TransactionInput, dict[str, Any]],
    ) -> Transaction:
        """
        Create a transaction with a fresh id, newest first.

        Raises:
            ValueError: Invalid input (nothing changes)
            MutationError: The store rejected the write (change reverted)
        """
        if not isinstance(data, TransactionInput):
            data = TransactionInput.model_validate(data)
        transaction = data.build(new_record_id(), utc_now())

        def compute(current):
            return (transaction,) + current, transaction.id, transaction

        await self._mutate(EntityKind.TRANSACTION, ChangeOperation.ADD, compute)
        await self._audit.log(AuditEventBuilder.transaction_created(transaction))
        return transaction

    async def update_transaction(
        self,
        transaction_id: str,
        changes: dict[str, Any],
    ) -> Transaction:
        """
        Change fields of an existing transaction and refresh its stamp.

        A change that touches amount, category or status must leave a
        completed transaction with both an amount and a category.
        """
        _check_fields(changes, _TRANSACTION_FIELDS)

        def compute(current):
            existing = self._require(EntityKind.TRANSACTION, transaction_id)
            candidate = Transaction.model_validate({
                **existing.model_dump(),
                **changes,
                "id": existing.id,
                "updated_at": utc_now(),
            })
            touches_completeness = {"amount", "category_id", "status"} & set(changes)
            if (
                touches_completeness
                and candidate.status == TransactionStatus.COMPLETED
                and not candidate.is_complete
            ):
                raise ValueError("A completed transaction needs an amount and a category")
            records = tuple(candidate if t.id == transaction_id else t for t in current)
            return records, transaction_id, candidate

        mutation = await self._mutate(EntityKind.TRANSACTION, ChangeOperation.UPDATE, compute)
        transaction = mutation.record
        await self._audit.log(AuditEventBuilder.transaction_updated(transaction))
        return transaction

    async def confirm_draft(
        self,
        transaction_id: str,
        amount: Any,
        category_id: str,
    ) -> Transaction:
        """Complete a draft with the amount and category the user picked."""
        return await self.update_transaction(transaction_id, {
            "amount": amount,
            "category_id": category_id,
            "status": TransactionStatus.COMPLETED,
        })

    async def delete_transaction(self, transaction_id: str) -> None:
        def compute(current):
            self._require(EntityKind.TRANSACTION, transaction_id)
            return tuple(t for t in current if t.id != transaction_id), transaction_id, None

        await self._mutate(EntityKind.TRANSACTION, ChangeOperation.DELETE, compute)
        await self._audit.log(AuditEventBuilder.transaction_deleted(transaction_id))

    # --- categories ---

    async def add_category(
        self,
        data: Union[CategoryInput, dict[str, Any]],
    ) -> Category:
        if not isinstance(data, CategoryInput):
            data = CategoryInput.model_validate(data)
        category = data.build(new_record_id(), utc_now())

        def compute(current):
            return current + (category,), category.id, category

        await self._mutate(EntityKind.CATEGORY, ChangeOperation.ADD, compute)
        await self._audit.log(AuditEventBuilder.category_created(category))
        return category

    async def update_category(
        self,
        category_id: str,
        changes: dict[str, Any],
    ) -> Category:
        """Rename, re-icon or re-kind a category. The id never changes."""
        _check_fields(changes, _CATEGORY_FIELDS)

        def compute(current):
            existing = self._require(EntityKind.CATEGORY, category_id)
            candidate = Category.model_validate({
                **existing.model_dump(),
                **changes,
                "id": existing.id,
                "updated_at": utc_now(),
            })
            records = tuple(candidate if c.id == category_id else c for c in current)
            return records, category_id, candidate

        mutation = await self._mutate(EntityKind.CATEGORY, ChangeOperation.UPDATE, compute)
        category = mutation.record
        await self._audit.log(AuditEventBuilder.category_updated(category))
        return category

    async def delete_category(self, category_id: str) -> None:
        """Remove a category. Transactions using it are left as they are."""
        def compute(current):
            self._require(EntityKind.CATEGORY, category_id)
            return tuple(c for c in current if c.id != category_id), category_id, None

        await self._mutate(EntityKind.CATEGORY, ChangeOperation.DELETE, compute)
        await self._audit.log(AuditEventBuilder.category_deleted(category_id))

    # -------------------------------------------------------------------------
    # Backup
    # -------------------------------------------------------------------------

    async def export_backup(self) -> BackupBundle:
        """The whole ledger as it is in memory, untransformed."""
        bundle = BackupBundle(
            version=self._backup_version,
            exported_at=utc_now(),
            transactions=list(self._transactions),
            categories=list(self._categories),
        )
        await self._audit.log(AuditEventBuilder.data_exported(
            len(bundle.transactions), len(bundle.categories)
        ))
        return bundle

    async def import_backup(
        self,
        payload: Union[BackupBundle, dict[str, Any], str, bytes],
    ) -> ImportReport:
        """
        Merge a backup into the ledger (last-modified-wins).

        The merged collections are kept in memory even if saving them
        fails; each collection is saved independently and failures are
        reported rather than raised.

        Raises:
            BackupFormatError: The payload is not a backup bundle
        """
        bundle = parse_bundle(payload)

        async with self._all_locks():
            result = reconcile(self._transactions, self._categories, bundle)
            self._categories = result.categories
            self._transactions = result.transactions

            store = self._mode.active_store
            failures: dict[EntityKind, str] = {}
            pending = (
                (EntityKind.CATEGORY, result.changed_categories, result.categories),
                (EntityKind.TRANSACTION, result.changed_transactions, result.transactions),
            )
            for kind, changed, collection in pending:
                if not changed:
                    continue
                try:
                    await store.save_merged(kind, changed, collection)
                except (StorageError, PreconditionError) as e:
                    failures[kind] = str(e)
                    logger.error("import_persist_failed", kind=kind.value, error=str(e))
                    await self._audit.log(
                        AuditEventBuilder.import_persist_failed(kind.value, str(e))
                    )

        report = ImportReport(
            transactions_changed=len(result.changed_transactions),
            categories_changed=len(result.changed_categories),
            categories_synthesized=len(result.synthesized_category_ids),
            failures=failures,
        )
        logger.info(
            "backup_imported",
            transactions_changed=report.transactions_changed,
            categories_changed=report.categories_changed,
            categories_synthesized=report.categories_synthesized,
            failed_kinds=report.failed_kinds,
        )
        await self._audit.log(AuditEventBuilder.data_imported(
            report.transactions_changed,
            report.categories_changed,
            report.failed_kinds,
        ))
        return report

    async def export_to_file(self, path: Union[str, Path]) -> Path:
        return write_backup(await self.export_backup(), path)

    async def import_from_file(self, path: Union[str, Path]) -> ImportReport:
        return await self.import_backup(read_backup(path))
