"""
Ledger package: the in-memory ledger, its storage mode and reconciliation.
"""

from snapledger.ledger.backup import (
    BackupFormatError,
    parse_bundle,
    read_backup,
    write_backup,
)
from snapledger.ledger.coordinator import (
    ImportReport,
    LedgerStore,
    Mutation,
    MutationError,
    MutationState,
    UnknownRecordError,
)
from snapledger.ledger.mode import ModeSelector
from snapledger.ledger.reconciliation import (
    MergeResult,
    ReconciliationResult,
    merge_records,
    placeholder_category_name,
    reconcile,
    sort_transactions,
    synthesize_missing_categories,
)

__all__ = [
    # Backup files
    "BackupFormatError",
    "parse_bundle",
    "read_backup",
    "write_backup",
    # Coordinator
    "ImportReport",
    "LedgerStore",
    "Mutation",
    "MutationError",
    "MutationState",
    "UnknownRecordError",
    # Mode
    "ModeSelector",
    # Reconciliation
    "MergeResult",
    "ReconciliationResult",
    "merge_records",
    "placeholder_category_name",
    "reconcile",
    "sort_transactions",
    "synthesize_missing_categories",
]
