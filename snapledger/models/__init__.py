"""
Data Models Package

This package contains all Pydantic models used by SnapLedger.
All data flowing through the system must conform to these schemas.
"""

from snapledger.models.ledger import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_IDS,
    EPOCH,
    LEGACY_CATEGORY_ID_MAP,
    PLACEHOLDER_CATEGORY_ICON,
    BackupBundle,
    Category,
    CategoryInput,
    LedgerRecord,
    Transaction,
    TransactionInput,
    TransactionStatus,
    TransactionType,
    UserIdentity,
    default_categories,
    migrate_category_ids,
    missing_default_categories,
    new_record_id,
    resolve_category_id,
    utc_now,
)
from snapledger.models.rows import (
    CATEGORY_COLUMNS,
    TRANSACTION_COLUMNS,
    CategoryRow,
    TransactionRow,
)
from snapledger.models.extraction import (
    AUTO_COMPLETE_CONFIDENCE,
    ExtractionResult,
    NeedsCategorization,
    NewCategorySuggestion,
    NotATransaction,
    TransactionCandidate,
)
from snapledger.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_CATEGORIES",
    "DEFAULT_CATEGORY_IDS",
    "EPOCH",
    "LEGACY_CATEGORY_ID_MAP",
    "PLACEHOLDER_CATEGORY_ICON",
    "BackupBundle",
    "Category",
    "CategoryInput",
    "LedgerRecord",
    "Transaction",
    "TransactionInput",
    "TransactionStatus",
    "TransactionType",
    "UserIdentity",
    "default_categories",
    "migrate_category_ids",
    "missing_default_categories",
    "new_record_id",
    "resolve_category_id",
    "utc_now",
    # Remote rows
    "CATEGORY_COLUMNS",
    "TRANSACTION_COLUMNS",
    "CategoryRow",
    "TransactionRow",
    # Extraction models
    "AUTO_COMPLETE_CONFIDENCE",
    "ExtractionResult",
    "NeedsCategorization",
    "NewCategorySuggestion",
    "NotATransaction",
    "TransactionCandidate",
    # Audit models
    "AUDIT_COLUMNS",
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
