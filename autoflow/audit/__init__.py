"""Audit log persisted from the event bus."""
from autoflow.audit.models import AuditLog, AuditLogFilter
from autoflow.audit.repository import (
    MemoryAuditLogRepository,
    SupabaseAuditLogRepository,
    create_audit_log_repository,
)
from autoflow.audit.service import AuditLogService

__all__ = [
    "AuditLog",
    "AuditLogFilter",
    "AuditLogService",
    "MemoryAuditLogRepository",
    "SupabaseAuditLogRepository",
    "create_audit_log_repository",
]
