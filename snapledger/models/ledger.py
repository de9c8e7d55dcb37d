"""
Core Ledger Models for SnapLedger

These models define the schemas for every record the ledger stores,
imports or exports. They are designed to:
1. Be immutable once built, so a collection snapshot is a plain value
2. Read every historical spelling of a record (camelCase, `type` for kind)
3. Always write one canonical snake_case form

DESIGN DECISION: Stored records are lenient (a Draft may lack an amount or
a category) while user input is strict. Loading old or partial data must
never fail because a record is incomplete; creating a new completed record
without the required fields must.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Iterable, Optional
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

PLACEHOLDER_CATEGORY_ICON = "🏷️"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    """Fresh opaque identifier for a new record."""
    return str(uuid4())


def _date_only(value: Any) -> Any:
    # Older clients stored full ISO timestamps in the date field
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a money movement. Categories carry one too."""
    EXPENSE = "expense"
    INCOME = "income"


class TransactionStatus(str, Enum):
    """
    Transaction lifecycle status.

    A DRAFT comes from an incomplete or low-confidence voice entry and is
    promoted to COMPLETED once the user confirms it.
    """
    DRAFT = "draft"
    COMPLETED = "completed"


# =============================================================================
# RECORDS
# =============================================================================

class LedgerRecord(BaseModel):
    """
    Fields shared by every synchronised record.

    `updated_at` drives last-modified-wins reconciliation. A record that
    has never been stamped compares as the epoch.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque stable identifier"
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("updated_at", "updatedAt"),
        description="Last modification time (UTC)"
    )

    @field_validator("updated_at", mode="before")
    @classmethod
    def blank_timestamp_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("updated_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are treated as UTC so all of them compare."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def modified_at(self) -> datetime:
        return self.updated_at or EPOCH

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict in the canonical snake_case form."""
        return self.model_dump(mode="json")


class Category(LedgerRecord):
    """A tag for grouping transactions."""

    name: str = Field(
        ...,
        min_length=1,
        description="Display name"
    )
    icon: str = Field(
        default=PLACEHOLDER_CATEGORY_ICON,
        description="Short symbol shown next to the name"
    )
    kind: TransactionType = Field(
        default=TransactionType.EXPENSE,
        validation_alias=AliasChoices("kind", "type"),
        description="Whether the category groups expenses or income"
    )


class Transaction(LedgerRecord):
    """
    A single money movement.

    `category_id` is a foreign key into the categories but is never
    enforced: a dangling id renders as uncategorized.
    """

    amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Non-negative amount; may be missing on a draft"
    )
    kind: TransactionType = Field(
        default=TransactionType.EXPENSE,
        validation_alias=AliasChoices("kind", "type"),
    )
    category_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("category_id", "categoryId"),
        description="Category this transaction belongs to"
    )
    date: Annotated[
        date,
        BeforeValidator(_date_only),
        Field(description="Calendar day of the transaction (YYYY-MM-DD)")
    ]
    note: Optional[str] = None
    # Records written before drafts existed have no status at all
    status: TransactionStatus = Field(
        default=TransactionStatus.COMPLETED,
    )

    @field_validator("category_id", "note", "amount", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @property
    def is_draft(self) -> bool:
        return self.status == TransactionStatus.DRAFT

    @property
    def is_complete(self) -> bool:
        """Has everything a record needs to leave draft status."""
        return self.amount is not None and bool(self.category_id)


# =============================================================================
# USER INPUT
# =============================================================================

class TransactionInput(BaseModel):
    """
    Transaction fields supplied by the user (or a voice entry).

    Everything except the identity and the modification stamp, which the
    ledger assigns itself.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = Field(default=None, ge=0)
    kind: TransactionType = TransactionType.EXPENSE
    category_id: Optional[str] = None
    date: Annotated[date, BeforeValidator(_date_only)]
    note: Optional[str] = Field(default=None, max_length=1000)
    status: TransactionStatus = TransactionStatus.COMPLETED

    @field_validator("category_id", "note", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @model_validator(mode="after")
    def completed_needs_amount_and_category(self) -> "TransactionInput":
        if self.status == TransactionStatus.COMPLETED:
            if self.amount is None:
                raise ValueError("A completed transaction needs an amount")
            if not self.category_id:
                raise ValueError("A completed transaction needs a category")
        return self

    def build(self, record_id: str, stamp: datetime) -> Transaction:
        return Transaction(id=record_id, updated_at=stamp, **self.model_dump())


class CategoryInput(BaseModel):
    """Category fields the user may set; the id is never editable."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default=PLACEHOLDER_CATEGORY_ICON, max_length=16)
    kind: TransactionType = TransactionType.EXPENSE

    def build(self, record_id: str, stamp: datetime) -> Category:
        return Category(id=record_id, updated_at=stamp, **self.model_dump())


class UserIdentity(BaseModel):
    """The signed-in user as reported by the authentication provider."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None


# =============================================================================
# DEFAULT CATEGORIES & IDENTIFIER MIGRATION
# =============================================================================

# Deterministic ids so the defaults are the same row on every device
DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="a1e7e720-4e56-42f7-927c-9b788a8d1a1e", name="Food", icon="🍔", kind=TransactionType.EXPENSE),
    Category(id="b2e7e720-4e56-42f7-927c-9b788a8d1b2e", name="Transport", icon="🚗", kind=TransactionType.EXPENSE),
    Category(id="c3e7e720-4e56-42f7-927c-9b788a8d1c3e", name="Shopping", icon="🛍️", kind=TransactionType.EXPENSE),
    Category(id="d4e7e720-4e56-42f7-927c-9b788a8d1d4e", name="Fun", icon="🎮", kind=TransactionType.EXPENSE),
    Category(id="e5e7e720-4e56-42f7-927c-9b788a8d1e5e", name="Bills", icon="🧾", kind=TransactionType.EXPENSE),
    Category(id="f6e7e720-4e56-42f7-927c-9b788a8d1f6e", name="Health", icon="💊", kind=TransactionType.EXPENSE),
    Category(id="10e7e720-4e56-42f7-927c-9b788a8d101e", name="Salary", icon="💰", kind=TransactionType.INCOME),
    Category(id="20e7e720-4e56-42f7-927c-9b788a8d202e", name="Bonus", icon="🎁", kind=TransactionType.INCOME),
    Category(id="30e7e720-4e56-42f7-927c-9b788a8d303e", name="Invest", icon="📈", kind=TransactionType.INCOME),
)

DEFAULT_CATEGORY_IDS: frozenset[str] = frozenset(c.id for c in DEFAULT_CATEGORIES)

# Human-readable ids used before categories synced across devices
LEGACY_CATEGORY_ID_MAP: dict[str, str] = {
    "food": "a1e7e720-4e56-42f7-927c-9b788a8d1a1e",
    "transport": "b2e7e720-4e56-42f7-927c-9b788a8d1b2e",
    "shopping": "c3e7e720-4e56-42f7-927c-9b788a8d1c3e",
    "entertainment": "d4e7e720-4e56-42f7-927c-9b788a8d1d4e",
    "bills": "e5e7e720-4e56-42f7-927c-9b788a8d1e5e",
    "health": "f6e7e720-4e56-42f7-927c-9b788a8d1f6e",
    "salary": "10e7e720-4e56-42f7-927c-9b788a8d101e",
    "bonus": "20e7e720-4e56-42f7-927c-9b788a8d202e",
    "investment": "30e7e720-4e56-42f7-927c-9b788a8d303e",
}


def resolve_category_id(raw_id: Optional[str]) -> Optional[str]:
    """Map a legacy category id to its stable id; anything else is returned as is."""
    if raw_id is None:
        return None
    return LEGACY_CATEGORY_ID_MAP.get(raw_id, raw_id)


def default_categories(stamp: Optional[datetime] = None) -> list[Category]:
    """
    Copies of the default set, stamped with `stamp` when one is given.

    An unstamped default counts as older than any stamped copy, so a
    renamed default from a backup wins over a freshly seeded one.
    """
    if stamp is None:
        return list(DEFAULT_CATEGORIES)
    return [c.model_copy(update={"updated_at": stamp}) for c in DEFAULT_CATEGORIES]


def missing_default_categories(
    categories: Iterable[Category],
    stamp: Optional[datetime] = None,
) -> list[Category]:
    """
    Default categories whose id is absent from `categories`.

    Presence is by id only: a default the user renamed is still present.
    """
    stamp = stamp or utc_now()
    present = {c.id for c in categories}
    return [c for c in default_categories(stamp) if c.id not in present]


def migrate_category_ids(
    transactions: Iterable[Transaction],
) -> tuple[list[Transaction], int]:
    """
    Pass every transaction's category id through the migration table.

    Returns the (possibly rewritten) transactions and how many changed.
    Timestamps are left alone: a migration is not a user edit.
    """
    migrated = []
    changed = 0
    for transaction in transactions:
        resolved = resolve_category_id(transaction.category_id)
        if resolved != transaction.category_id:
            transaction = transaction.model_copy(update={"category_id": resolved})
            changed += 1
        migrated.append(transaction)
    return migrated, changed


# =============================================================================
# BACKUP BUNDLE
# =============================================================================

class BackupBundle(BaseModel):
    """
    External-facing projection of the whole ledger.

    Used for export and as reconciliation input. Never persisted as is.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int = Field(default=1, ge=1)
    exported_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("exported_at", "exportedAt"),
    )
    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
