"""Audit log storage backends."""
from typing import Optional

import structlog

from autoflow.audit.models import AuditLog, AuditLogFilter
from autoflow.config import Settings
from autoflow.db.supabase import SupabaseClient, get_supabase_client

logger = structlog.get_logger()

AUDIT_LOG_TABLE = "audit_log"


class MemoryAuditLogRepository:
    def __init__(self):
        self._entries: list[AuditLog] = []

    async def save(self, entry: AuditLog) -> AuditLog:
        self._entries.append(entry)
        return entry

    async def find(self, filter: AuditLogFilter, limit: int) -> list[AuditLog]:
        """Entries matching ``filter``, newest first."""
        matches = [
            entry
            for entry in self._entries
            if (filter.event_name is None or entry.event_name == filter.event_name)
            and (filter.user_id is None or entry.user_id == filter.user_id)
            and (filter.after is None or entry.timestamp >= filter.after)
            and (filter.before is None or entry.timestamp <= filter.before)
        ]
        matches.sort(key=lambda entry: entry.timestamp, reverse=True)
        return matches[:limit]


class SupabaseAuditLogRepository:
    """Audit log rows in the Supabase ``audit_log`` table."""

    def __init__(self, client: SupabaseClient, table: str = AUDIT_LOG_TABLE):
        self.client = client
        self.table = table

    async def save(self, entry: AuditLog) -> AuditLog:
        await self.client.insert(self.table, entry.model_dump(mode="json"))
        return entry

    async def find(self, filter: AuditLogFilter, limit: int) -> list[AuditLog]:
        filters = {}
        if filter.event_name is not None:
            filters["event_name"] = filter.event_name
        if filter.user_id is not None:
            filters["user_id"] = filter.user_id

        rows = await self.client.select(
            self.table,
            filters=filters,
            gte={"timestamp": filter.after.isoformat()} if filter.after else None,
            lte={"timestamp": filter.before.isoformat()} if filter.before else None,
            limit=limit,
            order_by="timestamp",
            descending=True,
        )
        return [AuditLog.model_validate(row) for row in rows]


def create_audit_log_repository(settings: Settings):
    """Build the repository selected by ``audit_log_backend``."""
    if settings.audit_log_backend == "supabase":
        client: Optional[SupabaseClient] = get_supabase_client()
        if client is not None:
            return SupabaseAuditLogRepository(client)
        logger.warning("audit_log_falling_back_to_memory")
    return MemoryAuditLogRepository()
