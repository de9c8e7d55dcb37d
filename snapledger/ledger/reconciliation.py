"""
Reconciliation Engine

Merges an incoming data set (a backup bundle) into the current ledger.

RULES:
1. Records are matched by id. An unknown id is appended.
2. A known id is overwritten only when the incoming copy is strictly newer
   (last-modified-wins on `updated_at`; a record never stamped counts as
   the epoch). Ties keep what we have.
3. An incoming transaction pointing at a category nobody has gets a
   placeholder category, so every imported transaction stays categorised.
4. Only new or overwritten records are reported as changed; those are the
   only ones the active store needs to write.

Everything here is pure: no I/O, no logging, no exceptions for bad luck.
Running the same merge twice changes nothing the second time.
"""

from dataclasses import dataclass
from typing import Generic, Iterable, Sequence, TypeVar

from snapledger.models.ledger import (
    PLACEHOLDER_CATEGORY_ICON,
    BackupBundle,
    Category,
    LedgerRecord,
    Transaction,
    migrate_category_ids,
)

RecordT = TypeVar("RecordT", bound=LedgerRecord)


@dataclass(frozen=True)
class MergeResult(Generic[RecordT]):
    """Merged collection plus the records that were added or overwritten."""
    records: tuple[RecordT, ...]
    changed: tuple[RecordT, ...]


@dataclass(frozen=True)
class ReconciliationResult:
    transactions: tuple[Transaction, ...]
    categories: tuple[Category, ...]
    changed_transactions: tuple[Transaction, ...]
    changed_categories: tuple[Category, ...]
    synthesized_category_ids: tuple[str, ...]

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_transactions or self.changed_categories)


def merge_records(
    existing: Sequence[RecordT],
    incoming: Iterable[RecordT],
) -> MergeResult[RecordT]:
    """
    Last-modified-wins merge of `incoming` into `existing`.

    Existing order is kept; overwritten records stay in place and new ones
    are appended in incoming order.
    """
    merged = list(existing)
    position = {record.id: i for i, record in enumerate(merged)}
    changed: dict[str, RecordT] = {}

    for record in incoming:
        i = position.get(record.id)
        if i is None:
            position[record.id] = len(merged)
            merged.append(record)
            changed[record.id] = record
        elif record.modified_at > merged[i].modified_at:
            merged[i] = record
            changed[record.id] = record

    return MergeResult(records=tuple(merged), changed=tuple(changed.values()))


def placeholder_category_name(category_id: str) -> str:
    """Display name for a category known only by its id: first letter upper-cased."""
    return (category_id[:1].upper() + category_id[1:])[:100]


def synthesize_missing_categories(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
) -> list[Category]:
    """
    Placeholder categories for every category id the transactions use but
    `categories` lacks, one per id, taking the kind of the first
    transaction that uses it.

    Placeholders carry no `updated_at`, so any real copy of the category
    that turns up later wins the merge.
    """
    known = {c.id for c in categories}
    created = []
    for transaction in transactions:
        category_id = transaction.category_id
        if not category_id or category_id in known:
            continue
        known.add(category_id)
        created.append(Category(
            id=category_id,
            name=placeholder_category_name(category_id),
            icon=PLACEHOLDER_CATEGORY_ICON,
            kind=transaction.kind,
        ))
    return created


def sort_transactions(transactions: Iterable[Transaction]) -> tuple[Transaction, ...]:
    """Newest date first. Stable, so same-day records keep their order."""
    return tuple(sorted(transactions, key=lambda t: t.date, reverse=True))


def reconcile(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    bundle: BackupBundle,
) -> ReconciliationResult:
    """
    Merge `bundle` into the current collections.

    Categories are merged first so orphan detection sees both the current
    and the incoming categories.
    """
    incoming_transactions, _ = migrate_category_ids(bundle.transactions)

    category_merge = merge_records(categories, bundle.categories)
    placeholders = synthesize_missing_categories(
        incoming_transactions, category_merge.records
    )
    merged_categories = category_merge.records + tuple(placeholders)
    changed_categories = category_merge.changed + tuple(placeholders)

    transaction_merge = merge_records(transactions, incoming_transactions)

    return ReconciliationResult(
        transactions=sort_transactions(transaction_merge.records),
        categories=merged_categories,
        changed_transactions=transaction_merge.changed,
        changed_categories=changed_categories,
        synthesized_category_ids=tuple(c.id for c in placeholders),
    )
