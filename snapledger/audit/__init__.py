"""Audit logging package."""

from snapledger.audit.logger import AuditLogger, TabularAuditStorage

__all__ = ["AuditLogger", "TabularAuditStorage"]
