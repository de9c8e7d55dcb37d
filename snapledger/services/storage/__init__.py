"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
The device-local store is a directory of JSON files; the remote multi-user
store is a Google spreadsheet, but any TabularClient can stand in for it.
"""

from snapledger.services.storage.interface import (
    ChangeOperation,
    EntityKind,
    KeyValueStorage,
    LedgerRecordUnion,
    LedgerSnapshot,
    LedgerStoreInterface,
    NotFoundError,
    PreconditionError,
    RecordChange,
    StorageError,
    StoreUnavailableError,
    TableNotFoundError,
    TabularClient,
)
from snapledger.services.storage.local import (
    FileKeyValueStorage,
    LocalLedgerStore,
    try_parse_records,
)
from snapledger.services.storage.remote import RemoteLedgerStore
from snapledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsTable,
)

__all__ = [
    # Interfaces
    "KeyValueStorage",
    "LedgerStoreInterface",
    "TabularClient",
    # Values
    "ChangeOperation",
    "EntityKind",
    "LedgerRecordUnion",
    "LedgerSnapshot",
    "RecordChange",
    # Exceptions
    "NotFoundError",
    "PreconditionError",
    "StorageError",
    "StoreUnavailableError",
    "TableNotFoundError",
    # Local implementation
    "FileKeyValueStorage",
    "LocalLedgerStore",
    "try_parse_records",
    # Remote implementation
    "RemoteLedgerStore",
    "GoogleSheetsClient",
    "GoogleSheetsTable",
]
