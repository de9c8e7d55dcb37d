"""
Audit Logger

DESIGN DECISION: Every change to the ledger, and every repair the sync
engine makes on its own, is logged. This provides:
1. Complete traceability of what the engine did without being asked
2. Debugging capability when a write fails and is rolled back
3. Usage telemetry in the remote events table

The audit logger:
- Is async so it can share the ledger's event loop
- Gracefully handles failures (doesn't crash the app if logging fails)
- Stamps every event with the signed-in user, if any
"""

from typing import Optional

import structlog

from snapledger.models.audit import AuditEvent, AuditSeverity
from snapledger.services.storage.interface import (
    PreconditionError,
    StorageError,
    TabularClient,
)


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class TabularAuditStorage:
    """Appends audit events as rows of an events table."""

    def __init__(self, table: TabularClient):
        self._table = table

    async def append_event(self, event: AuditEvent) -> bool:
        await self._table.insert(event.to_table_row())
        return True


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The remote events table, when one is configured
    """

    def __init__(
        self,
        storage: Optional[TabularAuditStorage] = None,
        user_id: Optional[str] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            user_id: Signed-in user stamped on events that carry none.
        """
        self._storage = storage
        self._user_id = user_id
        self._logger = structlog.get_logger("snapledger.audit")

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def set_user(self, user_id: Optional[str]) -> None:
        self._user_id = user_id

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        if event.user_id is None and self._user_id:
            event = event.model_copy(update={"user_id": self._user_id})

        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except (StorageError, PreconditionError) as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True
