"""
Remote Storage Implementation

Used whenever a user is signed in. Talks to two tables of a remote tabular
store (`transactions` and `categories`), every read filtered by and every
write stamped with the owning user id.

Field translation between domain records and table rows lives entirely in
`snapledger.models.rows`; this module only decides which call to make.
"""

from typing import Any, Sequence

import structlog
from pydantic import ValidationError

from snapledger.models.ledger import (
    Category,
    LedgerRecord,
    Transaction,
    default_categories,
    missing_default_categories,
)
from snapledger.models.rows import CategoryRow, TransactionRow
from snapledger.services.storage.interface import (
    ChangeOperation,
    EntityKind,
    LedgerSnapshot,
    LedgerStoreInterface,
    PreconditionError,
    RecordChange,
    StorageError,
    TableNotFoundError,
    TabularClient,
)

logger = structlog.get_logger(__name__)

# Default category ids are shared by every user, so a row is identified by both
ROW_KEYS = ("id", "user_id")


class RemoteLedgerStore(LedgerStoreInterface):
    """
    Ledger storage in the remote multi-user store, scoped to one user.

    Single changes map to insert / update-by-id / delete-by-id.
    Reconciliation writes are upserts.
    """

    def __init__(
        self,
        user_id: str,
        transactions_table: TabularClient,
        categories_table: TabularClient,
    ):
        if not user_id:
            raise PreconditionError("The remote store needs a signed-in user")
        self._user_id = user_id
        self._transactions = transactions_table
        self._categories = categories_table

    @property
    def user_id(self) -> str:
        return self._user_id

    def _table(self, kind: EntityKind) -> TabularClient:
        if kind == EntityKind.TRANSACTION:
            return self._transactions
        return self._categories

    def _to_row(self, kind: EntityKind, record: LedgerRecord) -> dict[str, Any]:
        if kind == EntityKind.TRANSACTION:
            return TransactionRow.from_domain(record, self._user_id).to_table()
        return CategoryRow.from_domain(record, self._user_id).to_table()

    def _match(self, record_id: str) -> dict[str, str]:
        return {"id": record_id, "user_id": self._user_id}

    async def _select_rows(self, table: TabularClient, **kwargs) -> list[dict[str, Any]]:
        try:
            return await table.select({"user_id": self._user_id}, **kwargs)
        except TableNotFoundError:
            # A brand new user has no tables yet
            logger.info("remote_table_missing", user_id=self._user_id)
            return []

    async def load(self) -> LedgerSnapshot:
        """
        Fetch the user's transactions (newest first) and categories.

        Missing default categories are computed here and upserted, so a new
        user starts with the full default set.
        """
        transactions: list[Transaction] = []
        for row in await self._select_rows(self._transactions, order_by="date", descending=True):
            try:
                transactions.append(TransactionRow.model_validate(row).to_domain())
            except ValidationError as e:
                logger.warning("remote_row_skipped", table="transactions", id=row.get("id"), error=str(e))

        categories: list[Category] = []
        for row in await self._select_rows(self._categories):
            try:
                categories.append(CategoryRow.model_validate(row).to_domain())
            except ValidationError as e:
                logger.warning("remote_row_skipped", table="categories", id=row.get("id"), error=str(e))

        if categories:
            seeded = missing_default_categories(categories)
        else:
            seeded = default_categories()
        if seeded:
            try:
                await self._categories.upsert(
                    [self._to_row(EntityKind.CATEGORY, c) for c in seeded],
                    keys=ROW_KEYS,
                )
                logger.info("default_categories_seeded", user_id=self._user_id, count=len(seeded))
            except StorageError as e:
                # Still usable this session; the next load tries again
                logger.warning("remote_seed_failed", user_id=self._user_id, error=str(e))
            categories.extend(seeded)

        return LedgerSnapshot(
            transactions=tuple(transactions),
            categories=tuple(categories),
            seeded_category_ids=tuple(c.id for c in seeded),
        )

    async def save_change(self, change: RecordChange) -> None:
        table = self._table(change.kind)
        if change.operation == ChangeOperation.ADD:
            await table.insert(self._to_row(change.kind, change.record))
        elif change.operation == ChangeOperation.UPDATE:
            row = self._to_row(change.kind, change.record)
            await table.update(self._match(change.record_id), row)
        elif change.operation == ChangeOperation.DELETE:
            await table.delete(self._match(change.record_id))
        else:
            raise StorageError(f"Unsupported operation: {change.operation}")

    async def save_merged(
        self,
        kind: EntityKind,
        changed: Sequence[LedgerRecord],
        collection: Sequence[LedgerRecord],
    ) -> None:
        if not changed:
            return
        await self._table(kind).upsert(
            [self._to_row(kind, r) for r in changed],
            keys=ROW_KEYS,
        )
