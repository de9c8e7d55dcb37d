"""
Audit Models for SnapLedger

Every change to the ledger, and every time the sync engine repairs or
merges data on its own, produces an audit event. This provides:
1. A trail of what the engine did without being asked (seeding, migration)
2. Debugging information when a write fails and rolls back
3. Usage telemetry for the events table of the remote store

Audit events are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from snapledger.models.ledger import Category, Transaction, utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # Optimistic mutation failures
    MUTATION_ROLLED_BACK = "mutation_rolled_back"

    # Repairs done while loading
    CATEGORIES_SEEDED = "categories_seeded"
    CATEGORY_IDS_MIGRATED = "category_ids_migrated"

    # Backup
    DATA_IMPORTED = "data_imported"
    DATA_EXPORTED = "data_exported"
    IMPORT_PERSIST_FAILED = "import_persist_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity ('transaction' or 'category')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Signed-in user, if any"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_table_row(self) -> dict:
        """
        Convert to a row of the remote events table.

        Columns: event_id, timestamp, event_name, user_id, properties.
        """
        properties = dict(self.details)
        if self.entity_id:
            properties["entity_id"] = self.entity_id
        if self.error_message:
            properties["error_message"] = self.error_message
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_name": self.event_type.value,
            "user_id": self.user_id or "",
            "properties": json.dumps(properties, default=str),
        }


AUDIT_COLUMNS = ["event_id", "timestamp", "event_name", "user_id", "properties"]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(transaction)
        event = AuditEventBuilder.mutation_rolled_back("category", "update", cat_id, error)
    """

    @staticmethod
    def transaction_created(transaction: Transaction) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction.id,
            description=f"Transaction created ({transaction.status.value})",
            details={
                "kind": transaction.kind.value,
                "status": transaction.status.value,
                "has_note": bool(transaction.note),
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(transaction: Transaction) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction.id,
            description="Transaction updated",
            details={"status": transaction.status.value},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(transaction_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def category_created(category: Category) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            entity_id=category.id,
            description=f"Category created: {category.name}",
            details={"kind": category.kind.value},
            is_user_action=True,
        )

    @staticmethod
    def category_updated(category: Category) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_UPDATED,
            entity_type="category",
            entity_id=category.id,
            description=f"Category updated: {category.name}",
            is_user_action=True,
        )

    @staticmethod
    def category_deleted(category_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            entity_type="category",
            entity_id=category_id,
            description="Category deleted",
            is_user_action=True,
        )

    @staticmethod
    def mutation_rolled_back(
        entity_type: str,
        operation: str,
        record_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=record_id,
            description=f"Could not {operation} {entity_type}; change reverted",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def categories_seeded(category_ids: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_SEEDED,
            entity_type="category",
            description=f"Added {len(category_ids)} missing default categories",
            details={"category_ids": category_ids},
        )

    @staticmethod
    def category_ids_migrated(migrated_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_IDS_MIGRATED,
            entity_type="transaction",
            description=f"Migrated legacy category ids on {migrated_count} transactions",
            details={"migrated_count": migrated_count},
        )

    @staticmethod
    def data_imported(
        transactions_changed: int,
        categories_changed: int,
        failed_kinds: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_IMPORTED,
            severity=AuditSeverity.WARNING if failed_kinds else AuditSeverity.INFO,
            description="Backup imported" + (" with errors" if failed_kinds else ""),
            details={
                "transactions_changed": transactions_changed,
                "categories_changed": categories_changed,
                "failed_kinds": failed_kinds,
            },
            is_user_action=True,
        )

    @staticmethod
    def data_exported(transaction_count: int, category_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_EXPORTED,
            description="Backup exported",
            details={
                "transaction_count": transaction_count,
                "category_count": category_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_persist_failed(entity_type: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_PERSIST_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            description=f"Imported {entity_type} records could not be saved",
            error_message=error_message,
        )
