"""Audit log query endpoint."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from autoflow.api.dependencies import services
from autoflow.audit import AuditLogFilter
from autoflow.services import Services

router = APIRouter()


@router.get("/audit-log/events")
async def get_audit_events(
    event_name: Optional[str] = Query(None, alias="eventName"),
    user_id: Optional[str] = Query(None, alias="userId"),
    after: Optional[datetime] = None,
    before: Optional[datetime] = None,
    svc: Services = Depends(services),
) -> dict:
    """Most recent audit events matching the filter, newest first."""
    events = await svc.audit_log.get_events(
        AuditLogFilter(event_name=event_name, user_id=user_id, after=after, before=before)
    )
    return {"data": [event.model_dump(mode="json", by_alias=True) for event in events]}
