"""
Voice Entry Extraction Models

The extraction service listens to a spoken entry and proposes a
transaction. What it returns is PROPOSED data, not verified: a candidate
only skips review when it is both confident and complete, otherwise it is
saved as a Draft for the user to finish.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from snapledger.models.ledger import (
    PLACEHOLDER_CATEGORY_ICON,
    TransactionInput,
    TransactionStatus,
    TransactionType,
    utc_now,
)

AUTO_COMPLETE_CONFIDENCE = 0.9


def _default_date(data):
    # The model omits the date when the speaker did not mention one
    if isinstance(data, dict):
        value = data.get("date")
        if value is None or value == "":
            data = {**data, "date": utc_now().date()}
        elif isinstance(value, str) and "T" in value:
            data = {**data, "date": value.split("T", 1)[0]}
    return data


class NewCategorySuggestion(BaseModel):
    """A category the model thinks the user is missing."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default=PLACEHOLDER_CATEGORY_ICON, max_length=16)
    kind: TransactionType = Field(
        default=TransactionType.EXPENSE,
        validation_alias=AliasChoices("kind", "type"),
    )


class TransactionCandidate(BaseModel):
    """A structured transaction proposed by the extraction service."""
    model_config = ConfigDict(str_strip_whitespace=True)

    result_type: Literal["transaction"] = "transaction"

    amount: Optional[Decimal] = Field(default=None, ge=0)
    category_id: Optional[str] = None
    kind: TransactionType = TransactionType.EXPENSE
    date: date
    note: str = ""
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Overall confidence in the extraction (0-1)"
    )
    suggested_category: Optional[NewCategorySuggestion] = None

    @model_validator(mode="before")
    @classmethod
    def fill_date(cls, data):
        return _default_date(data)

    @field_validator("category_id", mode="before")
    @classmethod
    def blank_category_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def is_auto_completable(self, threshold: float = AUTO_COMPLETE_CONFIDENCE) -> bool:
        """Confident enough, with an amount and a category, to save without review."""
        return (
            self.confidence >= threshold
            and self.amount is not None
            and bool(self.category_id)
        )

    def to_input(self, threshold: float = AUTO_COMPLETE_CONFIDENCE) -> TransactionInput:
        """Completed input when auto-completable, a Draft otherwise."""
        status = (
            TransactionStatus.COMPLETED
            if self.is_auto_completable(threshold)
            else TransactionStatus.DRAFT
        )
        return TransactionInput(
            amount=self.amount,
            kind=self.kind,
            category_id=self.category_id,
            date=self.date,
            note=self.note or None,
            status=status,
        )


class NeedsCategorization(BaseModel):
    """Speech was about money, but no category could be picked."""

    result_type: Literal["uncategorized"] = "uncategorized"

    original_text: str = ""
    amount: Optional[Decimal] = Field(default=None, ge=0)
    kind: TransactionType = TransactionType.EXPENSE
    date: date
    note: str = ""

    @model_validator(mode="before")
    @classmethod
    def fill_date(cls, data):
        return _default_date(data)

    def to_input(self) -> TransactionInput:
        return TransactionInput(
            amount=self.amount,
            kind=self.kind,
            date=self.date,
            note=self.note or self.original_text or None,
            status=TransactionStatus.DRAFT,
        )


class NotATransaction(BaseModel):
    """Nothing to record; `message` explains why to the user."""

    result_type: Literal["non_accounting"] = "non_accounting"

    message: str


ExtractionResult = Annotated[
    Union[TransactionCandidate, NeedsCategorization, NotATransaction],
    Field(discriminator="result_type"),
]
