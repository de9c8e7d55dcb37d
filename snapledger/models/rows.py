"""
Remote Row Models

The remote store speaks its own column names. These structs are the only
place that knows them:

    domain          remote column
    ------          -------------
    category_id  -> category
    note         -> description
    kind         -> type
    updated_at   -> updated_at
    (owner)      -> user_id

Every row written carries the owning user id. Rows read back pass their
category through the identifier migration table, because remote data can
predate the stable ids just like local data can.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)

from snapledger.models.ledger import (
    PLACEHOLDER_CATEGORY_ICON,
    Category,
    Transaction,
    TransactionStatus,
    TransactionType,
    resolve_category_id,
)


def _blank_to_none(value: Any) -> Any:
    # Spreadsheet cells come back as "" when empty
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _date_only(value: Any) -> Any:
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


class _RemoteRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("updated_at", mode="before", check_fields=False)
    @classmethod
    def blank_timestamp(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("updated_at", check_fields=False)
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_table(self) -> dict[str, Any]:
        """JSON-ready column -> value mapping."""
        return self.model_dump(mode="json")


class TransactionRow(_RemoteRow):
    """One row of the remote `transactions` table."""

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    type: TransactionType = TransactionType.EXPENSE
    category: Optional[str] = None
    date: Annotated[date, BeforeValidator(_date_only)]
    description: Optional[str] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    updated_at: Optional[datetime] = None

    @field_validator("amount", "category", "description", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("status", "type", mode="before")
    @classmethod
    def blank_enum_uses_default(cls, v: Any, info: ValidationInfo) -> Any:
        if _blank_to_none(v) is None:
            return cls.model_fields[info.field_name].default
        return v

    @classmethod
    def from_domain(cls, transaction: Transaction, user_id: str) -> "TransactionRow":
        return cls(
            id=transaction.id,
            user_id=user_id,
            amount=transaction.amount,
            type=transaction.kind,
            category=transaction.category_id,
            date=transaction.date,
            description=transaction.note,
            status=transaction.status,
            updated_at=transaction.updated_at,
        )

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            amount=self.amount,
            kind=self.type,
            category_id=resolve_category_id(self.category),
            date=self.date,
            note=self.description,
            status=self.status,
            updated_at=self.updated_at,
        )


class CategoryRow(_RemoteRow):
    """One row of the remote `categories` table."""

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    icon: str = PLACEHOLDER_CATEGORY_ICON
    type: TransactionType = TransactionType.EXPENSE
    updated_at: Optional[datetime] = None

    @field_validator("icon", "type", mode="before")
    @classmethod
    def blank_uses_default(cls, v: Any, info: ValidationInfo) -> Any:
        if _blank_to_none(v) is None:
            return cls.model_fields[info.field_name].default
        return v

    @classmethod
    def from_domain(cls, category: Category, user_id: str) -> "CategoryRow":
        return cls(
            id=category.id,
            user_id=user_id,
            name=category.name,
            icon=category.icon,
            type=category.kind,
            updated_at=category.updated_at,
        )

    def to_domain(self) -> Category:
        return Category(
            id=self.id,
            name=self.name,
            icon=self.icon,
            kind=self.type,
            updated_at=self.updated_at,
        )


TRANSACTION_COLUMNS: list[str] = list(TransactionRow.model_fields)
CATEGORY_COLUMNS: list[str] = list(CategoryRow.model_fields)
