"""Services package."""

from snapledger.services.extraction import (
    ExtractionError,
    GeminiExtractionService,
)
from snapledger.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsTable,
    LedgerStoreInterface,
    LocalLedgerStore,
    NotFoundError,
    PreconditionError,
    RemoteLedgerStore,
    StorageError,
    StoreUnavailableError,
    TableNotFoundError,
    TabularClient,
)

__all__ = [
    # Extraction services
    "ExtractionError",
    "GeminiExtractionService",
    # Storage services
    "GoogleSheetsClient",
    "GoogleSheetsTable",
    "LedgerStoreInterface",
    "LocalLedgerStore",
    "NotFoundError",
    "PreconditionError",
    "RemoteLedgerStore",
    "StorageError",
    "StoreUnavailableError",
    "TableNotFoundError",
    "TabularClient",
]
