"""Querying the audit log."""
from autoflow.audit.models import AuditLog, AuditLogFilter

MAX_EVENTS = 50


class AuditLogService:
    def __init__(self, repository):
        self.repository = repository

    async def get_events(self, filter: AuditLogFilter) -> list[AuditLog]:
        """Return up to 50 events matching ``filter``, newest first."""
        return await self.repository.find(filter, limit=MAX_EVENTS)
