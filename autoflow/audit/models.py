"""Audit log entries and filters."""
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import Field

from autoflow.models import CamelModel
from autoflow.models.workflow import _utcnow


class AuditLog(CamelModel):
    """An event persisted by the database log streaming destination."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    event_name: str
    message: str
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    payload: dict[str, Any] = Field(default_factory=dict)


class AuditLogFilter(CamelModel):
    event_name: Optional[str] = None
    user_id: Optional[str] = None
    # Inclusive bounds on the event timestamp
    after: Optional[datetime] = None
    before: Optional[datetime] = None
