"""Audit trail sinks for governance decisions."""

from settlement_governance.audit.logger import (
    ConsoleAuditLogger,
    InMemoryAuditLogger,
    JsonlAuditLogger,
)

__all__ = ["ConsoleAuditLogger", "InMemoryAuditLogger", "JsonlAuditLogger"]
